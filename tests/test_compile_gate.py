import re
import subprocess
import sys
from pathlib import Path

import nmiSVM


ROOT = Path(__file__).resolve().parents[1]


def _setup_version() -> str:
    setup_text = (ROOT / "setup.py").read_text(encoding="utf-8")
    match = re.search(r'^VERSION\s*=\s*"([^"]+)"', setup_text, re.MULTILINE)
    assert match, "Could not find project version in setup.py"
    return match.group(1)


def test_package_version_matches_setup():
    assert nmiSVM.__version__ == _setup_version()


def test_compileall_strict_syntaxwarning_gate():
    result = subprocess.run(
        [
            sys.executable,
            "-W",
            "error::SyntaxWarning",
            "-m",
            "compileall",
            "-f",
            "-q",
            "nmiSVM",
            "scripts",
            "tests",
        ],
        cwd=ROOT,
        capture_output=True,
        text=True,
        check=False,
    )
    assert result.returncode == 0, result.stdout + result.stderr
