import pytest
from typer.testing import CliRunner

from blockscheme.cli import app

runner = CliRunner()


def test_infer_inline_expression() -> None:
    result = runner.invoke(app, ["infer", "(+ 1 2)"])
    assert result.exit_code == 0
    assert "(+ 1 2) :: Number" in result.output


def test_infer_file(tmp_path) -> None:
    source = tmp_path / "program.scm"
    source.write_text('(define f (lambda (s) s))\n(f "hi")\n')
    result = runner.invoke(app, ["infer", str(source)])
    assert result.exit_code == 0
    assert ":: (Function" in result.output
    assert '(f "hi") :: String' in result.output


def test_infer_subexpression() -> None:
    result = runner.invoke(app, ["infer", "(+ 1 2)", "--path", "1"])
    assert result.exit_code == 0
    assert "@ 1 :: Integer" in result.output


@pytest.mark.parametrize(
    "args, exit_code, message",
    [
        (["infer", "(undefined-procedure 1)"], 1, "Type inference failed"),
        (["infer", "(+ 1 2)", "--no-prelude"], 1, "Type inference failed"),
        (["infer", "(+ 1"], 2, "Syntax error"),
        (["check", "(if 1"], 2, "Syntax error"),
        (["parse-type", "(Function"], 2, "Syntax error"),
    ],
)
def test_failures_set_exit_code(args, exit_code: int, message: str) -> None:
    result = runner.invoke(app, args)
    assert result.exit_code == exit_code
    assert message in result.output


def test_check_succeeds() -> None:
    result = runner.invoke(app, ["check", "(string-length \"abc\")"])
    assert result.exit_code == 0
    assert "Type checking succeeded" in result.output


def test_check_reports_errors() -> None:
    result = runner.invoke(app, ["check", "(string-length 1)"])
    assert result.exit_code == 1
    assert "Type checking succeeded" not in result.output


def test_parse_type() -> None:
    result = runner.invoke(app, ["parse-type", "(All (#a) (Function #a #a))"])
    assert result.exit_code == 0
    assert "(All (#a) (Function #a #a))" in result.output
    assert "∀#a. (#a → #a)" in result.output
