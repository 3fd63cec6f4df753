"""
Parses a full goroutine dump out of a stream, separating the stack traces from
the unrelated output interleaved with them.
"""
import codecs
import logging

from . import analyzer_config
from . import roots
from . import scanner
from .frames import ParseError, PointerBand

logger = logging.getLogger(__name__)


class Context(object):
    """
    Result of parsing a dump.

    goroutines are in the order they were printed. goroot and gopaths are only
    set when paths were guessed.
    """

    def __init__(self, goroutines):
        self.goroutines = goroutines
        self.goroot = ""
        self.gopaths = {}

    def get_goroutines(self):
        return self.goroutines

    def get_files(self):
        """Returns all the source files referenced, deduped and sorted"""
        files = set()
        for goroutine in self.goroutines:
            for call in goroutine.signature.stack.calls:
                if call.src_path:
                    files.add(call.src_path)
        return sorted(files)

    def update_locations(self, found):
        self.goroot = found.goroot
        self.gopaths = found.gopaths
        for goroutine in self.goroutines:
            for call in goroutine.signature.stack.calls + goroutine.signature.created_by.calls:
                roots.update_locations(call, found)


def _read_lines(stream, max_line_length):
    """
    Yields (line, cut) for the lines of a text or binary stream, terminator
    included.

    A line longer than max_line_length is yielded in pieces, cut is True for
    all but the last one. Binary streams are measured in bytes and decoded as
    UTF-8 across pieces, so a character is never split.
    """
    decoder = None
    while True:
        chunk = stream.readline(max_line_length)
        if not chunk:
            break
        if isinstance(chunk, bytes):
            cut = len(chunk) >= max_line_length and not chunk.endswith(b"\n")
            if decoder is None:
                decoder = codecs.getincrementaldecoder("utf-8")("replace")
            yield decoder.decode(chunk), cut
        else:
            yield chunk, len(chunk) >= max_line_length and not chunk.endswith("\n")
    if decoder is not None:
        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail, False


def parse_dump(stream, out, guess_paths=False, root_resolver=None, band=None,
               max_line_length=None):
    """
    Processes the output of a goroutine dump.

    Anything not detected as part of a stack trace is written to out as soon as
    it is read, so junk before, between and after the traces keeps its place.

    Returns (context, error). context is None when no goroutine was found.
    error is the ParseError that stopped the scan, if any; the goroutines
    parsed before it are still in context.

    When guess_paths is true, root_resolver is called with the sorted list of
    referenced source files and must return a roots.Roots. It defaults to
    roots.guess_roots, which does disk I/O.
    """
    if band is None:
        band = analyzer_config.pointer_band()
    if max_line_length is None:
        max_line_length = analyzer_config.max_line_length()

    state = scanner.ScanningState(band)
    error = None
    was_long = False
    for line, cut in _read_lines(stream, max_line_length):
        if cut or was_long:
            # The pieces of a long line are never parsed.
            was_long = cut
            if out is not None:
                out.write(line)
            continue
        if not line:
            continue
        try:
            junk = state.scan(line)
        except ParseError as err:
            error = err
            break
        if junk and out is not None:
            out.write(junk)
    else:
        try:
            junk = state.finish()
        except ParseError as err:
            error = err
        else:
            if junk and out is not None:
                out.write(junk)

    if error is not None:
        logger.info("stopped parsing after %d goroutines: %s", len(state.goroutines), error)

    if not state.goroutines:
        return None, error

    context = Context(state.goroutines)
    name_arguments(context.goroutines)
    if guess_paths:
        if root_resolver is None:
            root_resolver = roots.guess_roots
        context.update_locations(root_resolver(context.get_files()))
    return context, error


def parse(stream, out=None):
    """Returns (goroutines, error), see parse_dump()"""
    context, error = parse_dump(stream, out)
    if context is None:
        return [], error
    return context.goroutines, error


def name_arguments(goroutines):
    """
    Names the pointer values that are seen more than once "#1", "#2", ...

    Values referenced by the first goroutine get the lowest numbers, each group
    in increasing value order, so the output is deterministic.
    """
    objects = {}
    in_primary = set()
    for index, goroutine in enumerate(goroutines):
        for call in goroutine.signature.stack.calls:
            for arg in call.args.values:
                if arg.is_ptr:
                    objects.setdefault(arg.value, []).append(arg)
                    if index == 0:
                        in_primary.add(arg.value)

    next_id = 1
    for value in sorted(in_primary):
        if len(objects[value]) > 1:
            for arg in objects[value]:
                arg.name = "#%d" % next_id
            next_id += 1
    for value in sorted(objects):
        if value in in_primary or len(objects[value]) < 2:
            continue
        for arg in objects[value]:
            arg.name = "#%d" % next_id
        next_id += 1
