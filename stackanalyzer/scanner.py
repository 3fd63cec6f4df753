"""
Line oriented state machine recognizing goroutine dumps and race detector
reports.

ScanningState.scan() is fed one line at a time, terminator included. It either
consumes the line into the goroutine being built, returns the line back as
junk that is not part of a stack trace, or raises ParseError when the line
violates the dump format at a position where only trace syntax is valid.
"""
import enum
import logging
import re

from . import frames
from .frames import ParseError

logger = logging.getLogger(__name__)

LOCKED_TO_THREAD = "locked to thread"
FRAMES_ELIDED = "...additional frames elided..."
RACE_HEADER_FOOTER = "=================="
RACE_HEADER = "WARNING: DATA RACE"

re_routine_header = re.compile(r"^([ \t]*)goroutine (\d+) \[([^\]]+)\]:$")
re_minutes = re.compile(r"^(\d+) minutes$")
re_unavail = re.compile(r"^(?:\t| +)goroutine running on other thread; stack unavailable")

# - The source file may be "<autogenerated>" for compiler generated code and
#   "??" for cgo.
# - The tab is often replaced with spaces when copy-pasted.
# - "+0x123" is absent for unnamed functions.
# - "fp=0x.. sp=0x.. pc=0x.." may be appended on C calls; discarded.
re_file = re.compile(
    r"^(?:\t| +)(\?\?|<autogenerated>|.+\.(?:c|go|s)):(\d+)"
    r"(?:| \+0x[0-9a-f]+)(?:| fp=0x[0-9a-f]+ sp=0x[0-9a-f]+(?:| pc=0x[0-9a-f]+))$")
re_created = re.compile(r"^created by (.+)$")
re_func = re.compile(r"^(.+)\((.*)\)$")

re_race_operation_header = re.compile(r"^(Read|Write) at (0x[0-9a-f]+) by goroutine (\d+):$")
re_race_previous_operation_header = re.compile(
    r"^Previous (read|write) at (0x[0-9a-f]+) by goroutine (\d+):$")
re_race_goroutine = re.compile(r"^Goroutine (\d+) \((running|finished)\) created at:$")


class State(enum.Enum):
    """
    Scanner states. The initial state is NORMAL.
    """
    # Outside a stack trace.
    NORMAL = 0

    # Panic stack trace.
    # ""
    BETWEEN_ROUTINE = 1
    # "goroutine 1 [running]:"
    GOT_ROUTINE_HEADER = 2
    # "main.main()"
    GOT_FUNC = 3
    # "created by main.glob..func4"
    GOT_CREATED = 4
    # "\t/foo/bar/baz.go:116 +0x35" after a function
    GOT_FILE_FUNC = 5
    # "\t/foo/bar/baz.go:116 +0x35" after a created by line
    GOT_FILE_CREATED = 6
    # "goroutine running on other thread; stack unavailable"
    GOT_UNAVAIL = 7

    # Race detector.
    # "=================="
    GOT_RACE_HEADER1 = 8
    # "WARNING: DATA RACE"
    GOT_RACE_HEADER2 = 9
    # "Read at 0x00c0000e4030 by goroutine 7:"
    GOT_RACE_OPERATION_HEADER = 10
    # "  main.panicRace.func1()"
    GOT_RACE_OPERATION_FUNC = 11
    # "\t/foo/bar/baz.go:116 +0x35"
    GOT_RACE_OPERATION_FILE = 12
    # ""
    BETWEEN_RACE_OPERATIONS = 13
    # "Goroutine 7 (running) created at:"
    GOT_RACE_GOROUTINE_HEADER = 14
    # "  main.panicRace.func1()"
    GOT_RACE_GOROUTINE_FUNC = 15
    # "\t/foo/bar/baz.go:116 +0x35"
    GOT_RACE_GOROUTINE_FILE = 16
    # ""
    BETWEEN_RACE_GOROUTINES = 17


def atou(s):
    """Decodes a short decimal number, returns None when it is not one"""
    if not 0 < len(s) < 19 or not s.isascii() or not s.isdigit():
        return None
    return int(s)


def parse_func(line, band):
    """
    Returns a Call if the line is a function call line, None otherwise.

    Raises ParseError when it is a function call line with invalid arguments.
    """
    match = re_func.match(line)
    if match is None:
        return None
    func = frames.Func(match.group(1))
    args = frames.parse_args(match.group(2), band, line.strip())
    return frames.Call(func, args)


def parse_file(call, line):
    """
    Sets the source location of the call if the line is a file line.

    Returns True when the line matched.
    """
    match = re_file.match(line)
    if match is None:
        return False
    num = atou(match.group(2))
    if num is None:
        raise ParseError("failed to parse int on line: %r" % line.strip(), line)
    call.init(match.group(1), num)
    return True


# States in which the input must not end: a line that only trace syntax can
# satisfy is still expected.
INCOMPLETE_STATES = frozenset([
    State.GOT_ROUTINE_HEADER,
    State.GOT_FUNC,
    State.GOT_CREATED,
    State.GOT_RACE_OPERATION_HEADER,
    State.GOT_RACE_OPERATION_FUNC,
    State.GOT_RACE_GOROUTINE_HEADER,
    State.GOT_RACE_GOROUTINE_FUNC,
])


class ScanningState(object):
    """
    Scans lines one by one and accumulates the goroutines found.

    The goroutine being built is always referenced by index into the append
    only goroutines list.
    """

    def __init__(self, band=None):
        self.goroutines = []
        self.state = State.NORMAL
        self.prefix = ""
        self.goroutine_index = -1
        # Race banner lines held back until the report is confirmed.
        self.pending = []
        self.band = band if band is not None else frames.PointerBand()
        # Every state must have a handler; getattr fails on a missing one.
        self._handlers = {
            state: getattr(self, "_scan_" + state.name.lower()) for state in State
        }

    def current(self):
        return self.goroutines[self.goroutine_index]

    def scan(self, line):
        """
        Scans one line, updates the goroutines and moves to the next state.

        Returns the junk text, None when the line was consumed. Junk may start
        with race banner lines held back from earlier calls.
        """
        if line.endswith("\r\n"):
            trimmed = line[:-2]
        elif line.endswith("\n"):
            trimmed = line[:-1]
        else:
            # Either the end of the stream without a final end of line, or the
            # line was cut because it was too long.
            if self.state == State.NORMAL:
                return line
            trimmed = line

        if trimmed and self.prefix:
            if not trimmed.startswith(self.prefix):
                prefix = self.prefix
                self._reset()
                raise ParseError("inconsistent indentation: %r, expected %r" % (trimmed, prefix),
                                 line)
            trimmed = trimmed[len(self.prefix):]

        previous = self.state
        junk = self._handlers[self.state](line, trimmed)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("scan(%r) %s -> %s", line, previous.name, self.state.name)
        return junk

    def finish(self):
        """
        Returns the lines still held back as junk, or None.

        Raises ParseError if the input ended in the middle of a stack trace.
        """
        if self.state in INCOMPLETE_STATES:
            state = self.state
            self._reset()
            raise ParseError("unexpected end of input, state %s" % state.name.lower())
        if self.pending:
            return self._junk("")
        return None

    def _reset(self):
        self.state = State.NORMAL
        self.prefix = ""
        self.pending = []

    def _junk(self, line):
        held = "".join(self.pending)
        self._reset()
        return held + line

    def _append_goroutine(self, goroutine):
        self.goroutines.append(goroutine)
        self.goroutine_index = len(self.goroutines) - 1

    # Panic stack trace.

    def _scan_normal(self, line, trimmed):
        match = re_routine_header.match(trimmed)
        if match:
            id = atou(match.group(2))
            if id is not None:
                # "<state>, \d+ minutes, locked to thread", see runtime/traceback.go.
                items = match.group(3).split(", ")
                sleep = 0
                locked = False
                for item in items[1:]:
                    if item == LOCKED_TO_THREAD:
                        locked = True
                        continue
                    minutes = re_minutes.match(item)
                    if minutes:
                        sleep = atou(minutes.group(1)) or 0
                signature = frames.Signature(state=items[0], sleep_min=sleep, sleep_max=sleep,
                                             locked=locked)
                self._append_goroutine(
                    frames.Goroutine(id, signature, first=not self.goroutines))
                self.state = State.GOT_ROUTINE_HEADER
                self.prefix = match.group(1)
                return None

        if trimmed == RACE_HEADER_FOOTER:
            self.state = State.GOT_RACE_HEADER1
            self.prefix = ""
            self.pending = [line]
            return None

        return self._junk(line)

    _scan_between_routine = _scan_normal

    def _scan_got_routine_header(self, line, trimmed):
        cur = self.current()
        if re_unavail.match(trimmed):
            cur.signature.unavailable = True
            self.state = State.GOT_UNAVAIL
            return None
        call = parse_func(trimmed, self.band)
        if call is not None:
            cur.signature.stack.calls.append(call)
            self.state = State.GOT_FUNC
            return None
        raise ParseError("expected a function after a goroutine header, got: %r" % trimmed.strip(),
                         line)

    def _scan_got_func(self, line, trimmed):
        calls = self.current().signature.stack.calls
        if not parse_file(calls[-1], trimmed):
            raise ParseError("expected a file after a function, got: %r" % trimmed.strip(), line)
        self.state = State.GOT_FILE_FUNC
        return None

    def _scan_got_created(self, line, trimmed):
        calls = self.current().signature.created_by.calls
        if not parse_file(calls[0], trimmed):
            raise ParseError("expected a file after a created line, got: %r" % trimmed, line)
        self.state = State.GOT_FILE_CREATED
        return None

    def _scan_got_file_func(self, line, trimmed):
        cur = self.current()
        if self._set_created_by(cur, trimmed):
            return None
        if trimmed == FRAMES_ELIDED:
            cur.signature.stack.elided = True
            return None
        call = parse_func(trimmed, self.band)
        if call is not None:
            cur.signature.stack.calls.append(call)
            self.state = State.GOT_FUNC
            return None
        if not trimmed:
            self.state = State.BETWEEN_ROUTINE
            return None
        return self._junk(line)

    def _scan_got_file_created(self, line, trimmed):
        if not trimmed:
            self.state = State.BETWEEN_ROUTINE
            return None
        return self._junk(line)

    def _scan_got_unavail(self, line, trimmed):
        if not trimmed:
            self.state = State.BETWEEN_ROUTINE
            return None
        if self._set_created_by(self.current(), trimmed):
            return None
        raise ParseError("expected empty line after unavailable stack, got: %r" % trimmed.strip(),
                         line)

    def _set_created_by(self, cur, trimmed):
        match = re_created.match(trimmed)
        if match is None:
            return False
        cur.signature.created_by.calls = [frames.Call(frames.Func(match.group(1)))]
        self.state = State.GOT_CREATED
        return True

    # Race detector.

    def _scan_got_race_header1(self, line, trimmed):
        if trimmed == RACE_HEADER:
            self.state = State.GOT_RACE_HEADER2
            self.pending.append(line)
            return None
        if trimmed == RACE_HEADER_FOOTER:
            # The previous banner was decoration, this one may start a report.
            held = "".join(self.pending)
            self.pending = [line]
            return held
        return self._junk(line)

    def _scan_got_race_header2(self, line, trimmed):
        match = re_race_operation_header.match(trimmed)
        if match is None:
            return self._junk(line)
        self._append_goroutine(
            frames.Goroutine(self._race_id(match.group(3), trimmed),
                             first=not self.goroutines,
                             race_addr=self._race_addr(match.group(2), trimmed),
                             race_write=match.group(1) == "Write"))
        self.pending = []
        self.state = State.GOT_RACE_OPERATION_HEADER
        return None

    def _scan_got_race_operation_header(self, line, trimmed):
        call = parse_func(trimmed.lstrip(" \t"), self.band)
        if call is None:
            raise ParseError("expected a function after a race operation, got: %r" % trimmed, line)
        self.current().signature.stack.calls.append(call)
        self.state = State.GOT_RACE_OPERATION_FUNC
        return None

    def _scan_got_race_operation_func(self, line, trimmed):
        calls = self.current().signature.stack.calls
        if not parse_file(calls[-1], trimmed):
            raise ParseError("expected a file after a race function, got: %r" % trimmed, line)
        self.state = State.GOT_RACE_OPERATION_FILE
        return None

    def _scan_got_race_operation_file(self, line, trimmed):
        if not trimmed:
            self.state = State.BETWEEN_RACE_OPERATIONS
            return None
        call = parse_func(trimmed.lstrip(" \t"), self.band)
        if call is None:
            raise ParseError("expected an empty line after a race file, got: %r" % trimmed, line)
        self.current().signature.stack.calls.append(call)
        self.state = State.GOT_RACE_OPERATION_FUNC
        return None

    def _scan_between_race_operations(self, line, trimmed):
        match = re_race_previous_operation_header.match(trimmed)
        if match is None:
            return self._scan_between_race_goroutines(line, trimmed)
        self._append_goroutine(
            frames.Goroutine(self._race_id(match.group(3), trimmed),
                             race_addr=self._race_addr(match.group(2), trimmed),
                             race_write=match.group(1) == "write"))
        self.state = State.GOT_RACE_OPERATION_HEADER
        return None

    def _scan_between_race_goroutines(self, line, trimmed):
        if trimmed == RACE_HEADER_FOOTER:
            self.state = State.NORMAL
            return None
        match = re_race_goroutine.match(trimmed)
        if match is None:
            raise ParseError("expected an operator or goroutine, got: %r" % trimmed, line)
        id = self._race_id(match.group(1), trimmed)
        for index, goroutine in enumerate(self.goroutines):
            if goroutine.id == id and goroutine.is_race():
                goroutine.signature.state = match.group(2)
                self.goroutine_index = index
                break
        else:
            raise ParseError("unexpected goroutine ID on line: %r" % trimmed.strip(), line)
        self.state = State.GOT_RACE_GOROUTINE_HEADER
        return None

    def _scan_got_race_goroutine_header(self, line, trimmed):
        call = parse_func(trimmed.lstrip(" \t"), self.band)
        if call is None:
            raise ParseError(
                "expected a function after a race operation or a race file, got: %r" % trimmed,
                line)
        self.current().signature.created_by.calls.append(call)
        self.state = State.GOT_RACE_GOROUTINE_FUNC
        return None

    def _scan_got_race_goroutine_func(self, line, trimmed):
        calls = self.current().signature.created_by.calls
        if not parse_file(calls[-1], trimmed):
            raise ParseError("expected a file after a race function, got: %r" % trimmed, line)
        self.state = State.GOT_RACE_GOROUTINE_FILE
        return None

    def _scan_got_race_goroutine_file(self, line, trimmed):
        if not trimmed:
            self.state = State.BETWEEN_RACE_GOROUTINES
            return None
        if trimmed == RACE_HEADER_FOOTER:
            self.state = State.NORMAL
            return None
        return self._scan_got_race_goroutine_header(line, trimmed)

    @staticmethod
    def _race_id(raw, trimmed):
        id = atou(raw)
        if id is None:
            raise ParseError("failed to parse goroutine id on line: %r" % trimmed.strip(), trimmed)
        return id

    @staticmethod
    def _race_addr(raw, trimmed):
        try:
            return frames.parse_uint(raw)
        except ValueError:
            raise ParseError("failed to parse address on line: %r" % trimmed.strip(), trimmed)
