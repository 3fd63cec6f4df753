"""
Groups goroutines with similar signatures into buckets.

Two goroutines running the same code usually differ only by the addresses they
were passed (receivers, closures, channels). With Similarity.ANY_POINTER those
are considered equal, which is what collapses thousands of goroutines into a
handful of buckets.
"""
import enum


class Similarity(enum.Enum):
    """How strictly two signatures must match to share a bucket"""
    # Same argument values and same flags (e.g. locked to thread).
    EXACT_FLAGS = "exact_flags"
    # Same argument values.
    EXACT_LINES = "exact_lines"
    # Pointer-looking arguments are all equal to each other.
    ANY_POINTER = "any_pointer"
    # Only the number of arguments matters.
    ANY_VALUE = "any_value"

    @classmethod
    def from_name(cls, name):
        if isinstance(name, cls):
            return name
        try:
            return cls(name.strip().lower().replace("-", "_"))
        except (AttributeError, ValueError):
            raise ValueError("unknown similarity %r, expected one of: %s" %
                             (name, ", ".join(s.value for s in cls)))


class Bucket(object):
    """
    A group of goroutines sharing a similar signature.

    signature is the merged signature of all the members: argument values
    that differed are named "*" and the sleep range covers every member.
    """

    def __init__(self, signature, ids, first, example_id=None):
        self.signature = signature
        self.ids = ids
        self.first = first
        self.example_id = example_id if example_id is not None else (ids[0] if ids else None)

    @property
    def size(self):
        return len(self.ids)

    def __len__(self):
        return len(self.ids)

    def add(self, goroutine):
        self.ids.append(goroutine.id)
        self.first = self.first or goroutine.first
        merge_signature(self.signature, goroutine.signature)

    def __repr__(self):
        return "Bucket(size=%d, state=%r, ids=%r)" % (len(self.ids), self.signature.state,
                                                      self.ids)


def _arg_key(arg, similarity):
    if similarity == Similarity.ANY_VALUE:
        return None
    if similarity == Similarity.ANY_POINTER and arg.is_ptr:
        return (True, None)
    return (arg.is_ptr, arg.value)


def _call_key(call, similarity):
    args = tuple(_arg_key(arg, similarity) for arg in call.args.values)
    return call.location_key() + (call.args.elided, args)


def canonical_key(signature, similarity):
    """
    Returns a hashable key; two signatures are similar iff their keys are equal.
    """
    locked = signature.locked if similarity == Similarity.EXACT_FLAGS else None
    return (
        signature.state,
        locked,
        signature.unavailable,
        signature.stack.elided,
        tuple(_call_key(call, similarity) for call in signature.stack.calls),
        tuple(call.location_key() for call in signature.created_by.calls),
    )


def merge_signature(into, other):
    """Folds a similar signature into another one"""
    into.sleep_min = min(into.sleep_min, other.sleep_min)
    into.sleep_max = max(into.sleep_max, other.sleep_max)
    into.locked = into.locked or other.locked
    for call, other_call in zip(into.stack.calls, other.stack.calls):
        for arg, other_arg in zip(call.args.values, other_call.args.values):
            if arg.value != other_arg.value:
                arg.name = "*"


def aggregate(goroutines, similarity=Similarity.ANY_POINTER):
    """
    Returns the buckets, largest first. Buckets of the same size are in the
    order their first goroutine appeared in the dump.

    The goroutines are not modified.
    """
    similarity = Similarity.from_name(similarity)
    buckets = {}
    for goroutine in goroutines:
        key = canonical_key(goroutine.signature, similarity)
        bucket = buckets.get(key)
        if bucket is None:
            buckets[key] = Bucket(goroutine.signature.copy(), [goroutine.id], goroutine.first)
        else:
            bucket.add(goroutine)

    out = list(buckets.values())
    for bucket in out:
        bucket.ids.sort()
    # sort() is stable, the dict keeps the first seen order.
    out.sort(key=lambda b: len(b.ids), reverse=True)
    return out
