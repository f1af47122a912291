from blockscheme.ast.nodes import (
    ASTNode,
    BoolLiteral,
    Call,
    Cond,
    Define,
    Hole,
    If,
    Lambda,
    Let,
    LetBinding,
    Letrec,
    ListLiteral,
    NameBinding,
    NullLiteral,
    NumberLiteral,
    Sequence,
    StringLiteral,
    Var,
)


def _serialize_binding(binding: LetBinding) -> str:
    return f"({serialize_expr(binding.name)} {serialize_expr(binding.value)})"


def serialize_expr(node: ASTNode) -> str:
    """Render an expression back to S-expression source text"""
    match node:
        case NumberLiteral(value=value):
            return str(value)
        case BoolLiteral(value=value):
            return "#t" if value else "#f"
        case StringLiteral(value=value):
            escaped = value.replace("\\", "\\\\").replace('"', '\\"')
            return f'"{escaped}"'
        case NullLiteral():
            return "'()"
        case ListLiteral(elements=elements):
            return "'(" + " ".join(serialize_expr(element) for element in elements) + ")"
        case Hole():
            return "_"
        case NameBinding(name=name, type=None):
            return name
        case NameBinding(name=name, type=annotation):
            return f"({name} : {annotation})"
        case Var(name=name):
            return name
        case Call(called=called, args=args):
            return "(" + " ".join(serialize_expr(part) for part in [called, *args]) + ")"
        case Define(name=name, value=value):
            return f"(define {serialize_expr(name)} {serialize_expr(value)})"
        case Let(bindings=bindings, body=body):
            bindings_str = " ".join(_serialize_binding(binding) for binding in bindings)
            return f"(let ({bindings_str}) {serialize_expr(body)})"
        case Letrec(bindings=bindings, body=body):
            bindings_str = " ".join(_serialize_binding(binding) for binding in bindings)
            return f"(letrec ({bindings_str}) {serialize_expr(body)})"
        case Lambda(params=params, body=body):
            params_str = " ".join(serialize_expr(param) for param in params)
            return f"(lambda ({params_str}) {serialize_expr(body)})"
        case Sequence(exprs=exprs):
            return "(sequence" + "".join(" " + serialize_expr(expr) for expr in exprs) + ")"
        case If(condition=condition, consequent=consequent, alternative=alternative):
            return (
                f"(if {serialize_expr(condition)} "
                f"{serialize_expr(consequent)} {serialize_expr(alternative)})"
            )
        case Cond(cases=cases):
            cases_str = "".join(
                f" ({serialize_expr(cond_case.condition)} {serialize_expr(cond_case.value)})" for cond_case in cases
            )
            return f"(cond{cases_str})"
        case _:
            raise ValueError(f"Unknown AST node: {node!r}")
