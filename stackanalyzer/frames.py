"""
Classes describing a parsed goroutine: its function calls, their arguments and
the signature used to compare one goroutine with another.

A goroutine dump looks like:

    goroutine 1 [chan receive, 5 minutes, locked to thread]:
    main.main.func1(0xc000194000, 0x2, ...)
    	/path/stackdemo.go:26 +0x76
    created by main.main
    	/path/stackdemo.go:25 +0x647

Each function line and its file line becomes a Call. The calls together form a
Stack, and the state from the header plus the Stack and the "created by" Stack
form the Signature.
"""
import copy
import os
import re

# Matches the sentinel path of a goroutine whose stack was not printed.
UNAVAILABLE_SRC_PATH = "<unavailable>"

# Default band of values considered to be pointers. Anything at or below one
# MiB is much more likely to be a length, a flag or a small integer. The
# ceiling is the top of the amd64 user-space address range.
DEFAULT_POINTER_FLOOR = 1 * 1024 * 1024
DEFAULT_POINTER_CEILING = 0x7fffffffffff

_MAX_UINT64 = (1 << 64) - 1

_re_octal = re.compile(r"^0[0-7_]+$")


class ParseError(ValueError):
    """
    Raised when a line violates the dump grammar at a position where only trace
    syntax is valid.
    """

    def __init__(self, message, line=None):
        super().__init__(message)
        self.line = line


class PointerBand(object):
    """Range of values, exclusive on both ends, that look like addresses"""

    def __init__(self, floor=DEFAULT_POINTER_FLOOR, ceiling=DEFAULT_POINTER_CEILING):
        if floor >= ceiling:
            raise ValueError("pointer floor %#x must be below ceiling %#x" % (floor, ceiling))
        self.floor = floor
        self.ceiling = ceiling

    def is_pointer(self, value):
        return self.floor < value < self.ceiling

    def __repr__(self):
        return "PointerBand(%#x, %#x)" % (self.floor, self.ceiling)


def parse_uint(token):
    """
    Decodes an unsigned 64 bit integer, detecting the base from its prefix.

    Accepts 0x, 0o and 0b prefixes, C-style leading zero octal and decimal.
    Raises ValueError on anything else, including negative values and values
    that do not fit in 64 bits.
    """
    if not token or token[0] in "+-" or token.strip() != token or not token.isascii():
        raise ValueError("invalid unsigned integer: %r" % token)
    if _re_octal.match(token):
        value = int(token, 8)
    else:
        value = int(token, 0)
    if value > _MAX_UINT64:
        raise ValueError("value out of range: %r" % token)
    return value


class Func(object):
    """
    A function name as printed by the runtime.

    Examples of raw names:
      main.main
      github.com/example/golang.org/x/sync/errgroup.(*Group).Go
      gopkg.in/yaml%2ev2.(*Parser).Parse
      panic
    """

    def __init__(self, raw=None):
        self.complete = ""
        self.import_path = ""
        self.dir_name = ""
        self.name = ""
        self.is_exported = False
        self.is_pkg_main = False
        if raw is not None:
            self.init(raw)

    def init(self, raw):
        if not raw:
            raise ParseError("empty function name", raw)

        # runtime.gopanic is printed as "panic" by the traceback code.
        if raw == "panic":
            raw = "runtime.panic"

        slash = raw.rfind("/")
        dot = raw.find(".", slash + 1)
        if dot == -1:
            self.import_path = ""
            self.name = raw
        else:
            self.import_path = raw[:dot].replace("%2e", ".")
            self.name = raw[dot + 1:]
        self.complete = (self.import_path + "." + self.name) if self.import_path else self.name
        self.dir_name = self.import_path[self.import_path.rfind("/") + 1:]
        self.is_pkg_main = self.import_path == "main"

        last = self.name.rsplit(".", 1)[-1]
        self.is_exported = last[:1].isupper()

    def is_stdlib_package(self):
        """
        Best guess from the import path alone: standard library packages never
        have a dot in their first path element.
        """
        if not self.import_path or self.is_pkg_main:
            return False
        return "." not in self.import_path.split("/", 1)[0]

    def __eq__(self, other):
        return isinstance(other, Func) and self.complete == other.complete

    def __hash__(self):
        return hash(self.complete)

    def __str__(self):
        return self.complete

    def __repr__(self):
        return "Func(%r)" % self.complete


class Arg(object):
    """A single argument value of a function call"""

    def __init__(self, value=0, is_ptr=False, name=""):
        self.value = value
        self.is_ptr = is_ptr
        # "#N" for pointers shared between goroutines, "*" once merged values
        # differed between aggregated goroutines.
        self.name = name

    def __eq__(self, other):
        return (isinstance(other, Arg) and self.value == other.value and
                self.is_ptr == other.is_ptr and self.name == other.name)

    def __hash__(self):
        return hash((self.value, self.is_ptr, self.name))

    def __str__(self):
        if self.name:
            return self.name
        if self.value == 0:
            return "0"
        return "%#x" % self.value

    def __repr__(self):
        return "Arg(%#x, is_ptr=%r, name=%r)" % (self.value, self.is_ptr, self.name)


class Args(object):
    """Argument list of a function call"""

    def __init__(self, values=None, elided=False):
        self.values = values if values is not None else []
        self.elided = elided

    def __eq__(self, other):
        return (isinstance(other, Args) and self.elided == other.elided and
                self.values == other.values)

    def __str__(self):
        items = [str(v) for v in self.values]
        if self.elided:
            items.append("...")
        return ", ".join(items)

    def __repr__(self):
        return "Args(%r, elided=%r)" % (self.values, self.elided)


def parse_args(raw, band, line=None):
    """
    Decodes the argument list found between the parenthesis of a call line.
    """
    args = Args()
    if not raw:
        return args
    for item in raw.split(", "):
        if item == "...":
            args.elided = True
            continue
        if not item:
            # Remaining values were dropped by the runtime.
            break
        try:
            value = parse_uint(item)
        except ValueError:
            raise ParseError("failed to parse int on line: %r" % (line if line is not None else raw),
                             line)
        args.values.append(Arg(value, band.is_pointer(value)))
    return args


class Call(object):
    """One stack frame: the function line and its file line"""

    def __init__(self, func=None, args=None, src_path="", line=0):
        self.func = func if func is not None else Func()
        self.args = args if args is not None else Args()
        self.src_path = ""
        self.line = 0
        # Rewritten by the root resolution when paths are guessed.
        self.local_src_path = ""
        self.rel_src_path = ""
        self.is_stdlib = self.func.is_stdlib_package()
        if src_path:
            self.init(src_path, line)

    def init(self, src_path, line):
        """The path and the line number are always set together"""
        self.src_path = src_path
        self.line = line
        self.local_src_path = src_path

    def has_location(self):
        return bool(self.src_path)

    @property
    def src_name(self):
        return os.path.basename(self.src_path)

    @property
    def full_src_line(self):
        return "%s:%d" % (self.src_path, self.line)

    def location_key(self):
        return (self.func.complete, self.src_path, self.line)

    def __eq__(self, other):
        return (isinstance(other, Call) and self.func == other.func and
                self.args == other.args and self.src_path == other.src_path and
                self.line == other.line)

    def __str__(self):
        return "%s(%s) %s" % (self.func, self.args, self.full_src_line)

    def __repr__(self):
        return "Call(%r, %r, %r, %d)" % (self.func.complete, self.args, self.src_path, self.line)


class Stack(object):
    """Ordered list of calls, outermost first as printed"""

    def __init__(self, calls=None, elided=False):
        self.calls = calls if calls is not None else []
        self.elided = elided

    def __eq__(self, other):
        return (isinstance(other, Stack) and self.elided == other.elided and
                self.calls == other.calls)

    def __len__(self):
        return len(self.calls)

    def __repr__(self):
        return "Stack(%r, elided=%r)" % (self.calls, self.elided)


class Signature(object):
    """The part of a goroutine used to decide if two goroutines are similar"""

    def __init__(self, state="", sleep_min=0, sleep_max=0, locked=False, stack=None,
                 created_by=None):
        self.state = state
        # Only a lower bound is printed; both are the same until merged.
        self.sleep_min = sleep_min
        self.sleep_max = sleep_max
        self.locked = locked
        self.stack = stack if stack is not None else Stack()
        self.created_by = created_by if created_by is not None else Stack()
        self.unavailable = False

    def creator(self):
        """Returns the call that started this goroutine, or None"""
        if self.created_by.calls:
            return self.created_by.calls[0]
        return None

    def sleep_string(self):
        if self.sleep_max == 0:
            return ""
        if self.sleep_min != self.sleep_max:
            return "%d~%d minutes" % (self.sleep_min, self.sleep_max)
        return "%d minutes" % self.sleep_max

    def copy(self):
        return copy.deepcopy(self)

    def __eq__(self, other):
        return (isinstance(other, Signature) and self.state == other.state and
                self.sleep_min == other.sleep_min and self.sleep_max == other.sleep_max and
                self.locked == other.locked and self.unavailable == other.unavailable and
                self.stack == other.stack and self.created_by == other.created_by)

    def __repr__(self):
        return "Signature(%r, stack=%r, created_by=%r)" % (self.state, self.stack,
                                                            self.created_by)


class Goroutine(object):
    """A goroutine as found in the dump"""

    def __init__(self, id, signature=None, first=False, race_addr=0, race_write=False):
        self.id = id
        self.signature = signature if signature is not None else Signature()
        self.first = first
        # Only set on race detector reports.
        self.race_addr = race_addr
        self.race_write = race_write

    def is_race(self):
        return self.race_addr != 0

    def __repr__(self):
        return "Goroutine(%d, %r)" % (self.id, self.signature)
