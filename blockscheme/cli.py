from pathlib import Path
from typing import Dict, Tuple

import typer
from rich.console import Console
from rich.markup import escape

from blockscheme.ast.serialize import serialize_expr
from blockscheme.ast.tree import TreeIndexPath
from blockscheme.library.prelude import prelude_environment
from blockscheme.parser.parser import parse_program
from blockscheme.parser.reader import SchemeSyntaxError
from blockscheme.shared.log import configure_logging
from blockscheme.typechecker.errors import TypeInferenceError, describe_error
from blockscheme.typechecker.infer import TypeInferrer
from blockscheme.typechecker.parse import parse_type
from blockscheme.typechecker.program import infer_program
from blockscheme.typechecker.serialize import pretty_print_type, serialize_type
from blockscheme.typechecker.typecheck import Typechecker
from blockscheme.typechecker.types import Type

app = typer.Typer(pretty_exceptions_enable=False)
console = Console()

SOURCE_HELP = "Path to a .scm file or an inline expression"
PRELUDE_HELP = "Make the built-in procedures available"


def _read_source(source: str) -> str:
    path = Path(source)
    try:
        is_file = path.is_file()
    except OSError:
        # too long to be a file name
        is_file = False
    return path.read_text() if is_file else source


def _environment(prelude: bool) -> Dict[str, Type]:
    return prelude_environment() if prelude else {}


def _parse_index_path(text: str) -> Tuple[int, ...]:
    try:
        return tuple(int(part) for part in text.split(".") if part)
    except ValueError:
        raise typer.BadParameter(f"Invalid index path: {text}")


@app.command()
def infer(
    source: str = typer.Argument(..., help=SOURCE_HELP),
    path: str = typer.Option("", "--path", "-p", help="Dot-separated child indices of a subexpression, e.g. 1.0"),
    prelude: bool = typer.Option(True, "--prelude/--no-prelude", envvar="BLOCKSCHEME_PRELUDE", help=PRELUDE_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", envvar="BLOCKSCHEME_VERBOSE", help="Log inference steps"),
) -> None:
    """Infer types with unification, one line per top-level form"""
    configure_logging(verbose, console)
    try:
        trees = parse_program(_read_source(source))
        env = _environment(prelude)
        if path:
            index_path = _parse_index_path(path)
            inferrer = TypeInferrer()
            for tree in trees:
                inferred = inferrer.infer_subexpr(TreeIndexPath(tree, index_path), env)
                console.print(escape(f"{serialize_expr(tree.root)} @ {path} :: {serialize_type(inferred)}"))
        else:
            for tree, inferred in infer_program(trees, env):
                console.print(escape(f"{serialize_expr(tree.root)} :: {serialize_type(inferred)}"))
    except SchemeSyntaxError as e:
        console.print(escape(f"Syntax error: {e}"), style="bold red")
        raise typer.Exit(code=2)
    except TypeInferenceError as e:
        message = describe_error(e.error) if e.error is not None else str(e)
        console.print(escape(f"Type inference failed: {message}"), style="bold red")
        raise typer.Exit(code=1)


@app.command()
def check(
    source: str = typer.Argument(..., help=SOURCE_HELP),
    prelude: bool = typer.Option(True, "--prelude/--no-prelude", envvar="BLOCKSCHEME_PRELUDE", help=PRELUDE_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", envvar="BLOCKSCHEME_VERBOSE", help="Log checking steps"),
) -> None:
    """Check types against annotations and report every error found"""
    configure_logging(verbose, console)
    try:
        trees = parse_program(_read_source(source))
    except SchemeSyntaxError as e:
        console.print(escape(f"Syntax error: {e}"), style="bold red")
        raise typer.Exit(code=2)

    checker = Typechecker(base_context=_environment(prelude))
    checker.add_defines(trees)
    for tree in trees:
        inferred = checker.infer_subexpr_type(TreeIndexPath(tree, ()))
        console.print(escape(f"{serialize_expr(tree.root)} :: {pretty_print_type(inferred)}"))

    for (tree_id, index_path), error in checker.errors.items():
        location = ".".join(str(index) for index in index_path) or "root"
        console.print(escape(f"{tree_id} @ {location}: {describe_error(error)}"), style="bold red")

    if len(checker.errors) > 0:
        raise typer.Exit(code=1)
    console.print("Type checking succeeded", style="bold green")


@app.command(name="parse-type")
def parse_type_command(
    text: str = typer.Argument(..., help="Type in S-expression syntax, e.g. (Function Integer Integer)"),
) -> None:
    """Parse a type and print it in canonical and readable form"""
    try:
        parsed = parse_type(text)
    except SchemeSyntaxError as e:
        console.print(escape(f"Syntax error: {e}"), style="bold red")
        raise typer.Exit(code=2)
    console.print(escape(serialize_type(parsed)))
    console.print(escape(pretty_print_type(parsed)))


def main() -> None:
    return app()


if __name__ == "__main__":
    main()
