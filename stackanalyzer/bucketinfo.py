"""
Utility classes for reporting the buckets found in a goroutine dump
"""
import json

from . import aggregate
from . import frames


def format_call(call):
    return "%s(%s)" % (call.func.complete, call.args)


def format_location(call):
    return "\t%s:%d" % (call.src_path, call.line)


def write_aggregated(out, buckets):
    """
    Writes buckets as text, largest first:

    Found 3 total goroutines

    2 goroutines; example goroutine=182; state=[semacquire]
    main.b2(0xc000192068)
    	/Users/ej/combinestacks/stackdemo/stackdemo.go:86
    created by main.main
    	/Users/ej/combinestacks/stackdemo/stackdemo.go:41
    """
    out.write("Found %d total goroutines\n" % sum(len(b) for b in buckets))
    for bucket in buckets:
        signature = bucket.signature
        state = signature.state
        extra = [s for s in (signature.sleep_string(),
                             "locked to thread" if signature.locked else "") if s]
        if extra:
            state = ", ".join([state] + extra)
        out.write("\n%d goroutines; example goroutine=%s; state=[%s]\n" %
                  (len(bucket), bucket.example_id, state))

        if signature.unavailable:
            out.write("\t%s\n" % frames.UNAVAILABLE_SRC_PATH)
        for call in signature.stack.calls:
            out.write(format_call(call) + "\n")
            out.write(format_location(call) + "\n")
        if signature.stack.elided:
            out.write("...additional frames elided...\n")
        for call in signature.created_by.calls:
            out.write("created by %s\n" % call.func.complete)
            out.write(format_location(call) + "\n")


class BucketSummary(object):
    """
    A bucket read back from JSON. Only keeps what is needed to display it.
    """

    def __init__(self, size, ids, state, first, calls, created_by):
        self.size = size
        self.ids = ids
        self.state = state
        self.first = first
        self.calls = calls
        self.created_by = created_by

    def __str__(self):
        return "BucketSummary -- {0} goroutines - [{1}]\n{2}".format(
            self.size, self.state, "\n".join(c["function"] for c in self.calls))


class BucketEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, aggregate.Bucket):
            return {
                "size": len(obj),
                "ids": obj.ids,
                "first": obj.first,
                "signature": obj.signature,
            }
        if isinstance(obj, frames.Signature):
            return {
                "state": obj.state,
                "sleep_min": obj.sleep_min,
                "sleep_max": obj.sleep_max,
                "locked": obj.locked,
                "unavailable": obj.unavailable,
                "elided": obj.stack.elided,
                "calls": obj.stack.calls,
                "created_by": obj.created_by.calls,
            }
        if isinstance(obj, frames.Call):
            return {
                "function": obj.func.complete,
                "package": obj.func.import_path,
                "name": obj.func.name,
                "args": [str(a) for a in obj.args.values],
                "args_elided": obj.args.elided,
                "src_path": obj.src_path,
                "local_src_path": obj.local_src_path,
                "line": obj.line,
                "is_stdlib": obj.is_stdlib,
                "is_exported": obj.func.is_exported,
            }

        # Let the base class default method raise the TypeError
        return json.JSONEncoder.default(self, obj)


class BucketDecoder(json.JSONDecoder):
    def __init__(self, *args, **kwargs):
        json.JSONDecoder.__init__(self, object_hook=self.object_hook, *args, **kwargs)

    def object_hook(self, obj):
        if "signature" not in obj or "ids" not in obj:
            return obj

        signature = obj["signature"]
        return BucketSummary(obj["size"], obj["ids"], signature["state"], obj["first"],
                             signature["calls"], signature["created_by"])


def to_json(buckets):
    return json.dumps({"buckets": buckets}, cls=BucketEncoder)
