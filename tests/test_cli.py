import pytest

import main

COUNTDOWN_HEX = "b903000000 85c9 7404 ffc9 ebf8 c3"


def test_hex_input_writes_graphs(tmp_path, capsys):
    pytest.importorskip("capstone")
    cfg_out = tmp_path / "cfg.dot"
    dom_out = tmp_path / "dom.dot"

    status = main.main([
        "--hex", COUNTDOWN_HEX, "--name", "countdown",
        "--cfg-out", str(cfg_out), "--dom-out", str(dom_out),
    ])

    assert status == 0
    assert cfg_out.read_text().startswith("digraph CFG {")
    assert dom_out.read_text().startswith("digraph DOM {")
    out = capsys.readouterr().out
    assert "PROCEDURE countdown" in out
    assert "  Loops: 1" in out


def test_file_input_and_report_file(tmp_path):
    pytest.importorskip("capstone")
    binary = tmp_path / "func.bin"
    binary.write_bytes(bytes.fromhex(COUNTDOWN_HEX.replace(" ", "")))
    report = tmp_path / "report.txt"

    assert main.main([str(binary), "--base", "0x401000", "-o", str(report)]) == 0
    assert "0x401005 -> loop 1<-2" in report.read_text()


def test_emulate_appends_counters(capsys):
    pytest.importorskip("capstone")
    pytest.importorskip("unicorn")

    assert main.main(["--hex", COUNTDOWN_HEX, "--emulate"]) == 0
    assert "head 1: 4 iterations started, 1 iterations completed" in capsys.readouterr().out


def test_missing_input_fails():
    assert main.main([]) == 1


def test_missing_file_fails(tmp_path):
    assert main.main([str(tmp_path / "absent.bin")]) == 1


def test_bad_hex_fails():
    assert main.main(["--hex", "zz"]) == 1


def test_unknown_architecture_fails():
    assert main.main(["--hex", "c3", "--arch", "sparc"]) == 1


def test_parse_address():
    assert main.parse_address("0x10") == 16
    assert main.parse_address("32") == 32


def test_emulate_lists_loops_that_never_ran(capsys):
    pytest.importorskip("capstone")
    pytest.importorskip("unicorn")

    assert main.main(["--hex", "c3 ffc9 7402 ebfa c3", "--emulate"]) == 0
    out = capsys.readouterr().out
    assert "0x400001 -> loop 1<-2" in out
    assert "head 1: 0 iterations started, 0 iterations completed" in out
    assert "No loop probe fired." not in out
