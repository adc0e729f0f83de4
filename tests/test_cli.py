import pytest

from simfire.cli import build_parser, main

SETUP = """
identifier = CliShot

[gun]
velocity = 50
cd = 0.47
mass = 0.1
size = 0.05

[target]
x = 40
z = 2
size = 3

[environment]
density = 0

[simulation]
generation = 4
maxgens = 2
threads = 2
seed = 5

[search]
aimjitter = 0
"""

SWEEP = """
[test]
doTestRun = true
aimX = 40
aimZStart = 0
aimZEnd = 8
aimZSteps = 2
csvExportTemplate = {dir}/{{run}}.csv
"""


def _write(tmp_path, text):
    path = tmp_path / "shot.ini"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_setup_is_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_search_run(tmp_path, capsys):
    assert main(["--setup", _write(tmp_path, SETUP)]) == 0

    out = capsys.readouterr().out
    assert "Simulation settings:" in out
    assert "identifier          CliShot" in out
    assert "Target hit after 1 generation(s):" in out


def test_search_run_with_plot(tmp_path, capsys):
    plot = tmp_path / "search.png"
    assert main(["--setup", _write(tmp_path, SETUP), "--plot", str(plot), "--plot-count", "2"]) == 0
    assert plot.exists()


def test_sweep_run_exports_hits(tmp_path, capsys):
    text = SETUP + SWEEP.format(dir=tmp_path / "csv")
    plot = tmp_path / "sweep.png"
    assert main(["--setup", _write(tmp_path, text), "--plot", str(plot)]) == 0

    out = capsys.readouterr().out
    assert "Test run:" in out
    assert "Test TEST0000" in out
    assert "Test TEST0001" in out
    assert (tmp_path / "csv" / "TEST0001.csv").exists()
    assert not (tmp_path / "csv" / "TEST0000.csv").exists()
    assert plot.exists()


def test_sweep_with_zero_aim_fails(tmp_path, capsys):
    text = SETUP + SWEEP.format(dir=tmp_path).replace("aimX = 40", "aimX = 0")
    assert main(["--setup", _write(tmp_path, text)]) == 1


def test_bad_setup_file(tmp_path, capsys):
    assert main(["--setup", _write(tmp_path, "identifier = x\n")]) == 1

    err = capsys.readouterr().err
    assert "Errors found in configuration, quitting:" in err
    assert "  -> Velocity must be positive" in err


def test_missing_setup_file(tmp_path, capsys):
    assert main(["--setup", str(tmp_path / "missing.ini")]) == 1
    assert "does not exist" in capsys.readouterr().err


def test_bad_csv_template_stops_before_any_run(tmp_path, capsys):
    text = SETUP + SWEEP.format(dir=tmp_path).replace("{run}", "{id}")
    assert main(["--setup", _write(tmp_path, text)]) == 1

    captured = capsys.readouterr()
    assert "  -> CSV export template must only use the {run} placeholder" in captured.err
    assert "Test run:" not in captured.out
