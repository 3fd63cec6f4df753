import json
import sys

import pytest

import combine_stacks

DUMP = (
    "starting\n"
    "goroutine 1 [running]:\n"
    "main.main()\n"
    "\t/path/main.go:10 +0x20\n"
    "\n"
    "goroutine 2 [running]:\n"
    "main.main()\n"
    "\t/path/main.go:10 +0x20\n"
)


@pytest.fixture
def dump_file(tmp_path):
    path = tmp_path / "dump.txt"
    path.write_text(DUMP)
    return str(path)


def run(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["combine_stacks.py"] + list(args))
    return combine_stacks.main()


def test_parse_addr():
    assert combine_stacks.parse_addr(":8080") == ("0.0.0.0", 8080)
    assert combine_stacks.parse_addr("localhost:5555") == ("localhost", 5555)
    with pytest.raises(ValueError):
        combine_stacks.parse_addr("8080")
    with pytest.raises(ValueError):
        combine_stacks.parse_addr("host:http")


def test_text(monkeypatch, capsys, dump_file):
    monkeypatch.delenv("PORT", raising=False)
    assert run(monkeypatch, dump_file) == 0
    captured = capsys.readouterr()
    assert captured.out.startswith("Found 2 total goroutines\n\n2 goroutines; example goroutine=1")
    assert captured.err == "starting\n"


def test_json(monkeypatch, capsys, dump_file):
    monkeypatch.delenv("PORT", raising=False)
    assert run(monkeypatch, "--json", dump_file) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["buckets"][0]["ids"] == [1, 2]


def test_hacky(monkeypatch, capsys, dump_file):
    monkeypatch.delenv("PORT", raising=False)
    assert run(monkeypatch, "--hacky", dump_file) == 0
    assert "2 goroutines; example goroutine=1" in capsys.readouterr().out


def test_parse_error(monkeypatch, capsys, tmp_path):
    monkeypatch.delenv("PORT", raising=False)
    path = tmp_path / "bad.txt"
    path.write_text("goroutine 1 [running]:\nmain.main()\n")
    assert run(monkeypatch, str(path)) == 1
    assert "unexpected end of input" in capsys.readouterr().err


def test_url(monkeypatch, capsys):
    monkeypatch.delenv("PORT", raising=False)
    urls = []

    def fake_retrieve(url):
        urls.append(url)
        return DUMP

    monkeypatch.setattr(combine_stacks.stackanalyzer.dump_fetcher, "retrieve_dump", fake_retrieve)
    assert run(monkeypatch, "--url", "http://localhost:6060") == 0
    assert urls == ["http://localhost:6060/debug/pprof/goroutine?debug=2"]
    assert "Found 2 total goroutines" in capsys.readouterr().out


def test_port_env_serves(monkeypatch):
    import runserver

    served = []
    monkeypatch.setenv("PORT", "8181")
    monkeypatch.setattr(runserver, "serve", lambda host, port: served.append((host, port)))
    assert run(monkeypatch) == 0
    assert served == [("0.0.0.0", 8181)]
