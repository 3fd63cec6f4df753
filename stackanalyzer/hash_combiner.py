"""
A permissive goroutine dump combiner.

Unlike the scanner it doesn't validate the dump layout: every line is matched
on its own, which copes with prefixes such as log timestamps in front of each
line. Goroutines are grouped by a hash of their function names and source
locations, ignoring arguments, so it may collapse more than aggregate() does.
"""
import hashlib
import re

RUNTIME_STATE = "running"

re_start_runtime_stack = re.compile(r"(runtime stack):")
re_goroutine_start = re.compile(r"goroutine (\d+) \[([^\]]+)\]")
re_call_line = re.compile(r"([^ ]+)\(([^)]*)\)\s*$")
re_created_by_line = re.compile(r"created by ([^ ]+)")
# .go lines end with +0x66, .s lines with fp=0x.. sp=0x.. pc=0x..; anything
# after the line number is ignored.
re_file_line = re.compile(r"([^\s]+):(\d+)($| \+| fp=).*$")


class Frame(object):
    def __init__(self, function, args="", file="", line=0):
        self.function = function
        self.args = args
        self.file = file
        self.line = line

    def __eq__(self, other):
        return (isinstance(other, Frame) and self.function == other.function and
                self.args == other.args and self.file == other.file and
                self.line == other.line)

    def __repr__(self):
        return "Frame(%r, %r, %r, %d)" % (self.function, self.args, self.file, self.line)


class Routine(object):
    def __init__(self, label, state, stack=None, created=None):
        self.label = label
        self.state = state
        self.stack = stack if stack is not None else []
        self.created = created if created is not None else Frame("")

    def __eq__(self, other):
        return (isinstance(other, Routine) and self.label == other.label and
                self.state == other.state and self.stack == other.stack and
                self.created == other.created)

    def __repr__(self):
        return "Routine(%r, %r, %r, %r)" % (self.label, self.state, self.stack, self.created)


def parse(lines):
    """
    Parses an iterable of lines into Routines.

    Raises ValueError for a frame or a file line that has no routine to go to.
    """
    routines = []
    created_by_found = False
    for line in lines:
        line = line.rstrip("\r\n")

        match = re_start_runtime_stack.search(line)
        if match:
            routines.append(Routine(match.group(1), RUNTIME_STATE))
            created_by_found = False
            continue

        match = re_goroutine_start.search(line)
        if match:
            routines.append(Routine(match.group(1), match.group(2)))
            created_by_found = False
            continue

        match = re_call_line.search(line)
        if match:
            if not routines:
                raise ValueError("found call line without a routine: " + line)
            routines[-1].stack.append(Frame(match.group(1), match.group(2)))
            continue

        match = re_created_by_line.search(line)
        if match:
            if not routines:
                raise ValueError("found created by line without a routine: " + line)
            routines[-1].created = Frame(match.group(1))
            created_by_found = True
            continue

        match = re_file_line.search(line)
        if match:
            if not routines:
                raise ValueError("found file line without a routine: " + line)
            last = routines[-1]
            if created_by_found:
                last.created.file = match.group(1)
                last.created.line = int(match.group(2))
                created_by_found = False
            else:
                if not last.stack:
                    raise ValueError("found file line without a frame: " + line)
                last.stack[-1].file = match.group(1)
                last.stack[-1].line = int(match.group(2))
    return routines


def _hash_frame(hasher, frame):
    hasher.update(frame.function.encode())
    hasher.update(b"|")
    hasher.update(frame.file.encode())
    hasher.update(b"|")
    hasher.update(str(frame.line).encode())
    hasher.update(b"|")


def stack_hash(routine):
    hasher = hashlib.sha256()
    for frame in routine.stack:
        _hash_frame(hasher, frame)
    _hash_frame(hasher, routine.created)
    return hasher.hexdigest()


def combine(routines):
    """Returns the groups of routines with the same hash, largest first"""
    groups = {}
    for routine in routines:
        groups.setdefault(stack_hash(routine), []).append(routine)
    return sorted(groups.values(), key=len, reverse=True)


def write_aggregated(out, routines):
    out.write("Found %d total goroutines\n" % len(routines))
    for group in combine(routines):
        example = group[0]
        out.write("\n%d goroutines; example goroutine=%s; state=[%s]\n" %
                  (len(group), example.label, example.state))
        for frame in example.stack:
            out.write("%s(%s)\n" % (frame.function, frame.args))
            out.write("\t%s:%d\n" % (frame.file, frame.line))
        if example.created.function:
            out.write("created by %s\n" % example.created.function)
            out.write("\t%s:%d\n" % (example.created.file, example.created.line))
