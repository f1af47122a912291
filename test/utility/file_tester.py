import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional

HEADER = re.compile(r';; TYPECHECK: (?P<status>OK|FAIL)\n(;; "(?P<type>.*)"\n)?')


@dataclass
class ExpectedResult:
    fails: bool
    type_str: Optional[str]


def read_expected_result(file_name: Path) -> ExpectedResult:
    """Reads the header comment of a program file.
    Format:
        ;; TYPECHECK: OK|FAIL
        ;; "serialized type of the last form"
    The type line may be left out for failing programs.
    """
    match = HEADER.match(file_name.read_text())
    if match is None:
        raise ValueError(f"{file_name}: missing ;; TYPECHECK header")
    return ExpectedResult(fails=match.group("status") == "FAIL", type_str=match.group("type"))


def get_all_test_files(base_path: Path, extension: str) -> List[Path]:
    return sorted(base_path.rglob(f"*.{extension}"))


def file_test_type(file_name: Path, runFn: Callable[[Path], Any]) -> None:
    expected = read_expected_result(file_name)
    try:
        result = runFn(file_name)
    except Exception as e:
        assert expected.fails, f"{file_name}: Expected '{expected.type_str}', but inference raised '{e}'"
        return

    assert not expected.fails, f"{file_name}: Expected failure, but inferred '{result}'"
    assert result == expected.type_str, f"{file_name}: Expected '{expected.type_str}', got '{result}'"
