import pytest

from spinblocks.__main__ import get_parser, main
from spinblocks.qc.ccsd import KINDS


def test_main(capsys):
    assert main(["-o", "3", "-v", "5", "-b", "2"]) == 0
    out = capsys.readouterr().out
    lines = out.splitlines()

    assert lines[0].startswith("creating the block spaces: ")
    assert lines[1].startswith("creating the descriptors: ")
    assert lines[2].split()[:4] == ["kind", "blocks", "canonical", "derivative"]
    rows = {line.split()[0]: line.split() for line in lines[3:]}
    assert list(rows) == list(KINDS)
    assert rows["ov"][1] == "4x6"
    assert rows["oovv"][1] == "4x4x6x6"


def test_main_strategies(capsys):
    assert main(["-o", "3", "-v", "4", "-b", "2", "--strategy", "guarded"]) == 0
    guarded = capsys.readouterr().out.splitlines()[2:]
    assert main(["-o", "3", "-v", "4", "-b", "2", "--strategy", "direct"]) == 0
    direct = capsys.readouterr().out.splitlines()[2:]
    assert guarded == direct


def test_main_policy(capsys):
    assert main(["-o", "10", "-v", "7", "-b", "4", "--policy", "uniform"]) == 0
    lines = capsys.readouterr().out.splitlines()
    rows = {line.split()[0]: line.split() for line in lines[3:]}
    assert rows["ov"][1] == "6x4"


def test_defaults():
    args = get_parser().parse_args([])
    assert args.nocc == 10
    assert args.nvir == 40
    assert args.block_size is None
    assert args.policy == "balanced"
    assert args.strategy == "guarded"


@pytest.mark.parametrize(
    "argv",
    [
        ["-o", "0"],
        ["-v", "-3"],
        ["-b", "x"],
        ["-b"],
        ["--policy", "random"],
        ["--strategy", "random"],
        ["extra"],
    ],
)
def test_invalid_arguments(capsys, argv):
    with pytest.raises(SystemExit) as e:
        main(argv)
    assert e.value.code == 1
    assert "usage:" in capsys.readouterr().err
