import io

import pytest

from stackanalyzer import aggregate
from stackanalyzer import dump_parser
from stackanalyzer.aggregate import Similarity

BLOCK = (
    "goroutine %d [%s]:\n"
    "main.worker(%s, 0x2)\n"
    "\t/path/stackdemo.go:40 +0x12\n"
    "created by main.main\n"
    "\t/path/stackdemo.go:30 +0x99\n"
    "\n"
)


def parse(text):
    goroutines, err = dump_parser.parse(io.StringIO(text))
    assert err is None
    return goroutines


def test_from_name():
    assert Similarity.from_name("exact-lines") == Similarity.EXACT_LINES
    assert Similarity.from_name(" ANY_VALUE ") == Similarity.ANY_VALUE
    assert Similarity.from_name(Similarity.EXACT_FLAGS) == Similarity.EXACT_FLAGS
    with pytest.raises(ValueError):
        Similarity.from_name("fuzzy")
    with pytest.raises(ValueError):
        Similarity.from_name(None)


def test_identical_goroutines_share_a_bucket():
    text = "".join(BLOCK % (i, "chan receive", "0xc000194000") for i in range(1, 11))
    buckets = aggregate.aggregate(parse(text))
    assert len(buckets) == 1
    assert buckets[0].size == 10
    assert len(buckets[0]) == 10
    assert buckets[0].ids == list(range(1, 11))
    assert buckets[0].first


def test_pointer_insensitive_vs_exact():
    text = BLOCK % (1, "running", "0xc000194000") + BLOCK % (2, "running", "0xc000196000")
    goroutines = parse(text)

    buckets = aggregate.aggregate(goroutines, Similarity.ANY_POINTER)
    assert len(buckets) == 1
    arg = buckets[0].signature.stack.calls[0].args.values[0]
    assert str(arg) == "*"

    assert len(aggregate.aggregate(goroutines, Similarity.EXACT_LINES)) == 2


def test_non_pointer_values_differ():
    text = (BLOCK % (1, "running", "0x5") + BLOCK % (2, "running", "0x6"))
    goroutines = parse(text)
    assert len(aggregate.aggregate(goroutines, Similarity.ANY_POINTER)) == 2
    assert len(aggregate.aggregate(goroutines, Similarity.ANY_VALUE)) == 1


def test_state_and_flags():
    text = (BLOCK % (1, "running", "0x5") +
            BLOCK % (2, "running, locked to thread", "0x5") +
            BLOCK % (3, "chan receive", "0x5"))
    goroutines = parse(text)

    buckets = aggregate.aggregate(goroutines, Similarity.EXACT_LINES)
    assert [b.ids for b in buckets] == [[1, 2], [3]]
    assert buckets[0].signature.locked

    assert len(aggregate.aggregate(goroutines, Similarity.EXACT_FLAGS)) == 3


def test_sleep_range_merged():
    text = (BLOCK % (1, "chan receive, 3 minutes", "0x5") +
            BLOCK % (2, "chan receive, 9 minutes", "0x5") +
            BLOCK % (3, "chan receive", "0x5"))
    buckets = aggregate.aggregate(parse(text))
    assert len(buckets) == 1
    assert buckets[0].signature.sleep_min == 0
    assert buckets[0].signature.sleep_max == 9


def test_sorted_by_size_then_first_seen():
    text = (BLOCK % (5, "select", "0x5") +
            BLOCK % (4, "running", "0x5") +
            BLOCK % (3, "running", "0x5") +
            BLOCK % (2, "IO wait", "0x5"))
    buckets = aggregate.aggregate(parse(text))
    assert [b.signature.state for b in buckets] == ["running", "select", "IO wait"]
    assert buckets[0].ids == [3, 4]
    assert buckets[0].example_id == 4


def test_unavailable_goroutines_are_equal():
    block = ("goroutine %d [running]:\n"
             "\tgoroutine running on other thread; stack unavailable\n"
             "created by pkg.Func\n"
             "\t/path/pkg/func.go:12 +0x34\n"
             "\n")
    buckets = aggregate.aggregate(parse(block % 1 + block % 2))
    assert len(buckets) == 1
    assert buckets[0].signature.unavailable
    assert buckets[0].signature.stack.calls == []


def test_different_creators():
    other = BLOCK.replace("stackdemo.go:30", "stackdemo.go:31")
    text = BLOCK % (1, "running", "0x5") + other % (2, "running", "0x5")
    assert len(aggregate.aggregate(parse(text))) == 2


def test_goroutines_not_modified():
    text = BLOCK % (1, "running", "0xc000194000") + BLOCK % (2, "running", "0xc000196000")
    goroutines = parse(text)
    aggregate.aggregate(goroutines)
    assert [str(g.signature.stack.calls[0].args.values[0]) for g in goroutines] == [
        "0xc000194000", "0xc000196000"]


def test_empty():
    assert aggregate.aggregate([]) == []


ELIDED = (
    "goroutine %d [running]:\n"
    "main.f(%s)\n"
    "\t/path/f.go:7 +0x12\n"
    "\n"
)


@pytest.mark.parametrize("similarity", list(Similarity))
def test_elided_arguments_are_equal(similarity):
    text = ELIDED % (1, "0x1, ...") + ELIDED % (2, "0x1, ...")
    buckets = aggregate.aggregate(parse(text), similarity)
    assert len(buckets) == 1
    assert buckets[0].signature.stack.calls[0].args.elided


@pytest.mark.parametrize("similarity", list(Similarity))
def test_elided_and_complete_arguments_differ(similarity):
    text = ELIDED % (1, "0x1, ...") + ELIDED % (2, "0x1")
    buckets = aggregate.aggregate(parse(text), similarity)
    assert [b.ids for b in buckets] == [[1], [2]]


def test_same_trace_repeated():
    block = BLOCK % (42, "chan receive", "0xc000194000")
    buckets = aggregate.aggregate(parse(block * 5))
    assert len(buckets) == 1
    assert buckets[0].ids == [42] * 5
    assert buckets[0].example_id == 42
