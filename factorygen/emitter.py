"""Emission plans: small ``ast`` builders plus a deterministic printer.

A plan is an ordered list of top-level statements, each optionally carrying a
leading comment. Printing goes through ``ast.unparse``. Comments inside
function bodies are placeholder statements that the printer swaps for real
``#`` lines after unparsing.
"""

from __future__ import annotations

import ast
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

# ast.FunctionDef/ClassDef grew ``type_params`` in 3.12
_TYPE_PARAMS = {"type_params": []} if "type_params" in ast.FunctionDef._fields else {}

_COMMENT_PREFIX = "__factorygen_comment_"
_COMMENT_LINE = re.compile(rf"^(?P<indent>[ \t]*){_COMMENT_PREFIX}(?P<payload>[0-9a-f]*)$")


@dataclass(frozen=True)
class PlanNode:
    node: ast.stmt
    comment: str | None = None  # printed as ``#`` lines above the node
    multiline: bool = False  # spread a dict literal assignment over one line per entry


# ── Node helpers ───────────────────────────────────────────


def name(identifier: str) -> ast.Name:
    return ast.Name(id=identifier, ctx=ast.Load())


def attr(dotted: str) -> ast.expr:
    """``a.b.c`` as a load expression."""
    head, *rest = dotted.split(".")
    node: ast.expr = name(head)
    for part in rest:
        node = ast.Attribute(value=node, attr=part, ctx=ast.Load())
    return node


def constant(value: object) -> ast.Constant:
    return ast.Constant(value=value)


def mk_import(module: str) -> ast.Import:
    return ast.Import(names=[ast.alias(name=module, asname=None)])


def mk_import_from(module: str, *names: str | tuple[str, str]) -> ast.ImportFrom:
    """``from module import a, b as c`` — pass ``(name, alias)`` tuples to alias."""
    aliases = []
    for entry in names:
        original, alias = entry if isinstance(entry, tuple) else (entry, None)
        aliases.append(ast.alias(name=original, asname=alias))
    return ast.ImportFrom(module=module, names=aliases, level=0)


def mk_assign(target: str, value: ast.expr) -> ast.Assign:
    return ast.Assign(
        targets=[ast.Name(id=target, ctx=ast.Store())], value=value, type_comment=None,
    )


def mk_ann_assign(target: str, annotation: ast.expr, value: ast.expr) -> ast.AnnAssign:
    return ast.AnnAssign(
        target=ast.Name(id=target, ctx=ast.Store()),
        annotation=annotation,
        value=value,
        simple=1,
    )


def mk_dict(entries: Iterable[tuple[ast.expr, ast.expr]]) -> ast.Dict:
    keys, values = [], []
    for key, value in entries:
        keys.append(key)
        values.append(value)
    return ast.Dict(keys=keys, values=values)


def subscript(value: ast.expr, items: Sequence[ast.expr]) -> ast.Subscript:
    """``value[a]`` or ``value[a, b, ...]``."""
    if len(items) == 1:
        index: ast.expr = items[0]
    else:
        index = ast.Tuple(elts=list(items), ctx=ast.Load())
    return ast.Subscript(value=value, slice=index, ctx=ast.Load())


def mk_param(param_name: str, annotation: ast.expr | None = None) -> ast.arg:
    return ast.arg(arg=param_name, annotation=annotation, type_comment=None)


def mk_arguments(params: Sequence[ast.arg], *, vararg: ast.arg | None = None,
                 kwarg: ast.arg | None = None) -> ast.arguments:
    return ast.arguments(
        posonlyargs=[], args=list(params), vararg=vararg,
        kwonlyargs=[], kw_defaults=[], kwarg=kwarg, defaults=[],
    )


def mk_static_method(method_name: str, arguments: ast.arguments, returns: ast.expr | None,
                     body: list[ast.stmt]) -> ast.FunctionDef:
    return ast.FunctionDef(
        name=method_name,
        args=arguments,
        body=body,
        decorator_list=[name("staticmethod")],
        returns=returns,
        type_comment=None,
        **_TYPE_PARAMS,
    )


def mk_class(class_name: str, *, bases: Sequence[str] = (), body: Sequence[ast.stmt] = (),
             docstring: str | None = None) -> ast.ClassDef:
    statements: list[ast.stmt] = []
    if docstring:
        statements.append(ast.Expr(value=constant(docstring)))
    statements.extend(body)
    if not statements:
        statements.append(ast.Pass())
    return ast.ClassDef(
        name=class_name,
        bases=[attr(base) for base in bases],
        keywords=[],
        body=statements,
        decorator_list=[],
        **_TYPE_PARAMS,
    )


def mk_call(func: ast.expr, args: Sequence[ast.expr] = (),
            keywords: Sequence[ast.keyword] = ()) -> ast.Call:
    return ast.Call(func=func, args=list(args), keywords=list(keywords))


def star(value: ast.expr) -> ast.Starred:
    return ast.Starred(value=value, ctx=ast.Load())


def double_star(value: ast.expr) -> ast.keyword:
    return ast.keyword(arg=None, value=value)


def f_string(*parts: str | tuple[ast.expr, str]) -> ast.JoinedStr:
    """Literal text and ``(expr, conversion)`` pairs, e.g. ``(name("x"), "r")``."""
    values: list[ast.expr] = []
    for part in parts:
        if isinstance(part, str):
            if part:
                values.append(constant(part))
            continue
        expr, conversion = part
        values.append(ast.FormattedValue(
            value=expr, conversion=ord(conversion) if conversion else -1, format_spec=None,
        ))
    return ast.JoinedStr(values=values)


def comment(text: str) -> ast.Expr:
    """A statement that prints as ``#`` comment line(s) at its own indentation."""
    return ast.Expr(value=name(_COMMENT_PREFIX + text.encode("utf-8").hex()))


# ── Printing ───────────────────────────────────────────────


def comment_lines(text: str, indent: str = "") -> list[str]:
    return [f"{indent}# {line}".rstrip() for line in text.strip("\n").splitlines()]


def box_comment(lines: Sequence[str]) -> str:
    """Frame *lines* in a box drawn with ``#`` comments."""
    width = max((len(line) for line in lines), default=0)
    out = ["# ┌" + "─" * (width + 2) + "┐"]
    out.extend(f"# │ {line.ljust(width)} │" for line in lines)
    out.append("# └" + "─" * (width + 2) + "┘")
    return "\n".join(out)


def _expand_comments(source: str) -> str:
    out: list[str] = []
    for line in source.splitlines():
        match = _COMMENT_LINE.match(line)
        if match is None:
            out.append(line)
            continue
        text = bytes.fromhex(match["payload"]).decode("utf-8")
        out.extend(comment_lines(text, match["indent"]))
    return "\n".join(out)


def _unparse_multiline_dict(node: ast.stmt) -> str | None:
    if isinstance(node, ast.Assign):
        target = " = ".join(ast.unparse(t) for t in node.targets)
    elif isinstance(node, ast.AnnAssign) and node.value is not None:
        target = f"{ast.unparse(node.target)}: {ast.unparse(node.annotation)}"
    else:
        return None
    value = node.value
    if not isinstance(value, ast.Dict) or not value.keys:
        return None
    lines = [f"{target} = {{"]
    for key, item in zip(value.keys, value.values):
        entry = f"**{ast.unparse(item)}" if key is None else f"{ast.unparse(key)}: {ast.unparse(item)}"
        lines.append(f"    {entry},")
    lines.append("}")
    return "\n".join(lines)


def _render(item: PlanNode) -> str:
    # unparse reads lineno on statements that can carry type comments
    ast.fix_missing_locations(ast.Module(body=[item.node], type_ignores=[]))
    text = _unparse_multiline_dict(item.node) if item.multiline else None
    if text is None:
        text = ast.unparse(item.node)
    text = _expand_comments(text)
    if item.comment:
        text = "\n".join([*comment_lines(item.comment), text])
    return text


def _separator(previous: ast.stmt, current: ast.stmt) -> str:
    blocks = (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)
    if isinstance(previous, blocks) or isinstance(current, blocks):
        return "\n\n\n"
    imports = (ast.Import, ast.ImportFrom)
    if isinstance(previous, imports) and isinstance(current, imports):
        return "\n"
    return "\n\n"


def print_module(plan: Sequence[PlanNode], header: str = "") -> str:
    """Print *plan* as module source. Same plan in, same text out."""
    chunks: list[str] = []
    if header:
        chunks.append(header.rstrip("\n") + "\n")
    previous: ast.stmt | None = None
    body = ""
    for item in plan:
        if previous is not None:
            body += _separator(previous, item.node)
        body += _render(item)
        previous = item.node
    if body:
        chunks.append(body)
    return "\n".join(chunks).rstrip("\n") + "\n"
