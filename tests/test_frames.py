import pytest

from stackanalyzer import frames


def test_parse_uint_bases():
    assert frames.parse_uint("0xc000194000") == 0xc000194000
    assert frames.parse_uint("42") == 42
    assert frames.parse_uint("0") == 0
    assert frames.parse_uint("010") == 8
    assert frames.parse_uint("0b101") == 5


@pytest.mark.parametrize("token", ["", "-1", "+1", " 1", "0xzz", "abc", "0x1ffffffffffffffff"])
def test_parse_uint_rejects(token):
    with pytest.raises(ValueError):
        frames.parse_uint(token)


def test_pointer_band():
    band = frames.PointerBand()
    assert band.is_pointer(0xc000194000)
    assert not band.is_pointer(0x2)
    assert not band.is_pointer(frames.DEFAULT_POINTER_FLOOR)
    assert not band.is_pointer(0xffffffffffffffff)

    narrow = frames.PointerBand(0x10, 0x100)
    assert narrow.is_pointer(0x20)
    with pytest.raises(ValueError):
        frames.PointerBand(0x100, 0x10)


def test_func_main():
    f = frames.Func("main.main.func1")
    assert f.import_path == "main"
    assert f.name == "main.func1"
    assert f.dir_name == "main"
    assert f.is_pkg_main
    assert not f.is_exported
    assert not f.is_stdlib_package()


def test_func_import_path():
    f = frames.Func("github.com/example/golang.org/x/sync/errgroup.(*Group).Go")
    assert f.import_path == "github.com/example/golang.org/x/sync/errgroup"
    assert f.name == "(*Group).Go"
    assert f.dir_name == "errgroup"
    assert f.is_exported
    assert not f.is_stdlib_package()


def test_func_escaped_dot():
    f = frames.Func("gopkg.in/yaml%2ev2.(*Parser).Parse")
    assert f.import_path == "gopkg.in/yaml.v2"
    assert f.complete == "gopkg.in/yaml.v2.(*Parser).Parse"


def test_func_stdlib_and_panic():
    assert frames.Func("net/http.(*Server).Serve").is_stdlib_package()
    f = frames.Func("panic")
    assert f.complete == "runtime.panic"
    assert f.is_stdlib_package()


def test_func_empty():
    with pytest.raises(frames.ParseError):
        frames.Func("")


def test_parse_args():
    band = frames.PointerBand()
    args = frames.parse_args("0xc000194000, 0x2, ...", band)
    assert [a.value for a in args.values] == [0xc000194000, 2]
    assert [a.is_ptr for a in args.values] == [True, False]
    assert args.elided
    assert str(args) == "0xc000194000, 0x2, ..."

    assert frames.parse_args("", band).values == []


def test_parse_args_error_keeps_line():
    with pytest.raises(frames.ParseError) as err:
        frames.parse_args("0x1, foo", frames.PointerBand(), "main.f(0x1, foo)")
    assert "main.f(0x1, foo)" in str(err.value)
    assert err.value.line == "main.f(0x1, foo)"


def test_arg_str():
    assert str(frames.Arg(0)) == "0"
    assert str(frames.Arg(0x2a)) == "0x2a"
    assert str(frames.Arg(0xc000194000, True, "#1")) == "#1"


def test_call():
    call = frames.Call(frames.Func("main.main"), src_path="/path/stackdemo.go", line=25)
    assert call.has_location()
    assert call.src_name == "stackdemo.go"
    assert call.full_src_line == "/path/stackdemo.go:25"
    assert call.local_src_path == "/path/stackdemo.go"
    assert call.location_key() == ("main.main", "/path/stackdemo.go", 25)
    assert not frames.Call(frames.Func("main.main")).has_location()


def test_signature_sleep_string_and_copy():
    sig = frames.Signature("chan receive", 5, 5)
    assert sig.sleep_string() == "5 minutes"
    sig.sleep_max = 9
    assert sig.sleep_string() == "5~9 minutes"
    assert frames.Signature("running").sleep_string() == ""

    sig.stack.calls.append(frames.Call(frames.Func("main.main")))
    dup = sig.copy()
    assert dup == sig
    dup.stack.calls.clear()
    assert len(sig.stack) == 1


def test_signature_creator():
    sig = frames.Signature("running")
    assert sig.creator() is None
    sig.created_by.calls.append(frames.Call(frames.Func("main.main")))
    assert sig.creator().func.complete == "main.main"


def test_goroutine_is_race():
    assert not frames.Goroutine(1).is_race()
    assert frames.Goroutine(7, race_addr=0xc0000e4030).is_race()
