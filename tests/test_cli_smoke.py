import subprocess
import sys


def test_cli_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "locuswalk", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "locuswalk" in cp.stdout.lower()
    for cmd in ["call", "indel-regions", "mask", "make-toy-data", "quickstart"]:
        assert cmd in cp.stdout


def test_cli_version() -> None:
    from locuswalk import __version__

    cp = subprocess.run(
        [sys.executable, "-m", "locuswalk", "--version"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert __version__ in cp.stdout


def test_mask_help_describes_missing_dp() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "locuswalk", "mask", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    text = " ".join(cp.stdout.split())
    assert "or with no DP at all" in text
    assert "genotypes without DP are kept" in text
