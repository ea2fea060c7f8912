# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Type relationship extraction.

The Reflector enumerates every type one class structurally or behaviorally
depends on, classified by EdgeKind:
- DerivesFrom: base classes
- Implements: base classes that are interfaces (Protocols, all-abstract classes)
- References: annotations of class attributes, self attributes, parameters
  and return values, generic arguments, string forward references, metaclass
- Calls: constructor calls, calls on types, and method calls on annotated
  parameters, locals and self attributes inside method bodies

Results are produced lazily and re-derived on every call. A malformed or
unresolvable member never aborts extraction; it is skipped.
"""

import ast
import logging
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from packviz.models import EdgeKind
from packviz.reflection.loader import LoadedModule, TypeEntity
from packviz.reflection.resolver import TypeResolver, dotted_name

logger = logging.getLogger(__name__)

UsedType = Tuple[TypeEntity, EdgeKind]
FunctionNode = Union[ast.FunctionDef, ast.AsyncFunctionDef]

# Errors a single malformed member may raise while being inspected
_MEMBER_ERRORS = (SyntaxError, ValueError, RecursionError)

# Special forms whose arguments are values, not types
_LITERAL_FORMS = frozenset({"typing.Literal", "typing_extensions.Literal"})
# Special forms whose arguments after the first are metadata
_ANNOTATED_FORMS = frozenset({"typing.Annotated", "typing_extensions.Annotated"})


class Reflector:
    """Extracts the types used by one class.

    Design Notes:
    - Each (target, kind) pair is produced once per call; the same target may
      appear with several kinds
    - Self references are produced as well; consumers drop them
    - Platform types are dropped when ignore_platform_types is set
    """

    def __init__(
        self,
        resolver: TypeResolver,
        type_: TypeEntity,
        ignore_platform_types: bool = True,
    ) -> None:
        """Initialize the reflector.

        Args:
            resolver: Resolver over all loaded modules of the run.
            type_: The class to inspect. Platform types have nothing to inspect.
            ignore_platform_types: Skip builtin and standard library targets.
        """
        self.resolver = resolver
        self.type = type_
        self.ignore_platform_types = ignore_platform_types
        self._field_types_cache: Optional[Dict[str, TypeEntity]] = None

    def get_base_types(self) -> Iterator[UsedType]:
        """Yield the structural relationships (DerivesFrom / Implements) only."""
        yield from self._unique(self._base_types())

    def get_used_types(self) -> Iterator[UsedType]:
        """Yield all relationships of the class."""
        yield from self._unique(self._all_used_types())

    def _unique(self, used: Iterator[UsedType]) -> Iterator[UsedType]:
        seen: Set[Tuple[str, EdgeKind]] = set()
        for target, kind in used:
            if self.ignore_platform_types and target.is_platform:
                continue
            key = (target.full_name, kind)
            if key in seen:
                continue
            seen.add(key)
            yield target, kind

    @property
    def _module(self) -> Optional[LoadedModule]:
        return self.type.module

    @property
    def _class_scope(self) -> str:
        """Scope of names used in the class body and method signatures."""
        return self.type.qualname

    @property
    def _enclosing_scope(self) -> Optional[str]:
        """Scope of names used in the class statement (bases, keywords)."""
        return self.type.qualname.rpartition(".")[0] or None

    def _all_used_types(self) -> Iterator[UsedType]:
        yield from self._base_types()
        yield from self._class_references()
        for method in self._methods():
            yield from self._guarded(method, self._method_references)
            yield from self._guarded(method, self._method_calls)

    def _guarded(self, method: FunctionNode, extract) -> Iterator[UsedType]:
        """Run one member extraction, skipping the member if it is malformed."""
        try:
            yield from extract(method)
        except _MEMBER_ERRORS as e:
            logger.debug(f"Skipping member {self.type.full_name}.{method.name}: {e}")

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def _base_types(self) -> Iterator[UsedType]:
        node, module = self.type.node, self._module
        if node is None or module is None:
            return

        for base in node.bases:
            # Generic[T] style bases: the subscripted value is the base,
            # its arguments are references
            target_expr = base.value if isinstance(base, ast.Subscript) else base
            target = self.resolver.resolve_expression(module, target_expr, self._enclosing_scope)
            if target is None:
                logger.debug(f"Unresolved base {ast.dump(target_expr)} of {self.type.full_name}")
                continue
            kind = EdgeKind.IMPLEMENTS if target.is_interface else EdgeKind.DERIVES_FROM
            yield target, kind

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def _class_references(self) -> Iterator[UsedType]:
        node = self.type.node
        if node is None:
            return

        statement: List[ast.expr] = [b.slice for b in node.bases if isinstance(b, ast.Subscript)]
        statement += [k.value for k in node.keywords if k.arg == "metaclass"]
        for expr in statement:
            yield from self._annotation_types(expr, self._enclosing_scope)

        for body_statement in node.body:
            if isinstance(body_statement, ast.AnnAssign):
                yield from self._annotation_types(body_statement.annotation, self._class_scope)

    def _method_references(self, method: FunctionNode) -> Iterator[UsedType]:
        args = method.args
        annotated = list(args.posonlyargs) + list(args.args) + list(args.kwonlyargs)
        if args.vararg is not None:
            annotated.append(args.vararg)
        if args.kwarg is not None:
            annotated.append(args.kwarg)

        # Signature annotations are evaluated in the class body
        for arg in annotated:
            if arg.annotation is not None:
                yield from self._annotation_types(arg.annotation, self._class_scope)

        if method.returns is not None:
            yield from self._annotation_types(method.returns, self._class_scope)

        # Attributes declared in methods: self.x: T = ...
        for node in _walk_body(method):
            if isinstance(node, ast.AnnAssign) and _is_self_attribute(node.target):
                yield from self._annotation_types(node.annotation)

    def _annotation_types(
        self, expr: Optional[ast.expr], scope: Optional[str] = None
    ) -> Iterator[UsedType]:
        try:
            for target in self._types_in_annotation(expr, scope):
                yield target, EdgeKind.REFERENCES
        except RecursionError as e:
            logger.debug(f"Skipping annotation in {self.type.full_name}: {e}")

    def _types_in_annotation(
        self, expr: Optional[ast.expr], scope: Optional[str] = None
    ) -> Iterator[TypeEntity]:
        """Yield every type named in an annotation expression."""
        module = self._module
        if expr is None or module is None:
            return

        if isinstance(expr, (ast.Name, ast.Attribute)):
            target = self.resolver.resolve_expression(module, expr, scope)
            if target is not None:
                yield target
        elif isinstance(expr, ast.Subscript):
            yield from self._types_in_annotation(expr.value, scope)
            form = self._special_form(expr.value, scope)
            if form in _LITERAL_FORMS:
                return
            arguments = expr.slice
            if form in _ANNOTATED_FORMS and isinstance(arguments, ast.Tuple) and arguments.elts:
                arguments = arguments.elts[0]
            yield from self._types_in_annotation(arguments, scope)
        elif isinstance(expr, (ast.Tuple, ast.List)):
            for element in expr.elts:
                yield from self._types_in_annotation(element, scope)
        elif isinstance(expr, ast.BinOp) and isinstance(expr.op, ast.BitOr):
            yield from self._types_in_annotation(expr.left, scope)
            yield from self._types_in_annotation(expr.right, scope)
        elif isinstance(expr, ast.Constant) and isinstance(expr.value, str):
            parsed = _parse_forward_reference(expr.value)
            if parsed is None:
                logger.debug(f"Skipping forward reference {expr.value!r} in {self.type.full_name}")
                return
            yield from self._types_in_annotation(parsed, scope)

    def _special_form(self, expr: ast.expr, scope: Optional[str]) -> Optional[str]:
        """Full name of a subscripted typing form such as typing.Literal."""
        module = self._module
        if module is None:
            return None
        target = self.resolver.resolve_expression(module, expr, scope)
        if target is not None:
            return target.full_name
        # typing not imported as a module we can follow (e.g. star imports)
        dotted = dotted_name(expr)
        if dotted in ("Literal", "Annotated"):
            return f"typing.{dotted}"
        return dotted

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def _method_calls(self, method: FunctionNode) -> Iterator[UsedType]:
        module = self._module
        if module is None:
            return

        local_types = self._local_variable_types(method)
        field_types = self._field_types()

        for node in _walk_body(method):
            if not isinstance(node, ast.Call):
                continue
            func = node.func

            # Constructor or callable type: Target(...) / module.Target(...)
            target = self.resolver.resolve_expression(module, func)
            if target is not None:
                yield target, EdgeKind.CALLS
                continue

            if not isinstance(func, ast.Attribute):
                continue
            receiver = func.value

            # Call on a type: Target.create(...)
            target = self.resolver.resolve_expression(module, receiver)
            if target is None and isinstance(receiver, ast.Name):
                # Call on an annotated parameter or local: repo.save()
                target = local_types.get(receiver.id)
            if target is None and _is_self_attribute(receiver):
                # Call on an annotated self attribute: self.repo.save()
                assert isinstance(receiver, ast.Attribute)
                target = field_types.get(receiver.attr)
            if target is not None:
                yield target, EdgeKind.CALLS

    def _local_variable_types(self, method: FunctionNode) -> Dict[str, TypeEntity]:
        """Map parameter and local names to their declared or constructed type."""
        module = self._module
        result: Dict[str, TypeEntity] = {}
        if module is None:
            return result

        args = method.args
        for arg in list(args.posonlyargs) + list(args.args) + list(args.kwonlyargs):
            target = self._direct_annotation_type(arg.annotation, self._class_scope)
            if target is not None:
                result[arg.arg] = target

        for node in _walk_body(method):
            if isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
                target = self._direct_annotation_type(node.annotation)
                if target is not None:
                    result[node.target.id] = target
            elif isinstance(node, ast.Assign) and isinstance(node.value, ast.Call):
                target = self.resolver.resolve_expression(module, node.value.func)
                if target is None:
                    continue
                for assigned in node.targets:
                    if isinstance(assigned, ast.Name):
                        result[assigned.id] = target
        return result

    def _field_types(self) -> Dict[str, TypeEntity]:
        """Map attribute names to their declared type (class body and self.x: T)."""
        if self._field_types_cache is not None:
            return self._field_types_cache

        node = self.type.node
        result: Dict[str, TypeEntity] = {}
        if node is None:
            self._field_types_cache = result
            return result

        for statement in node.body:
            if isinstance(statement, ast.AnnAssign) and isinstance(statement.target, ast.Name):
                target = self._direct_annotation_type(statement.annotation, self._class_scope)
                if target is not None:
                    result[statement.target.id] = target

        for method in self._methods():
            for inner in _walk_body(method):
                if isinstance(inner, ast.AnnAssign) and _is_self_attribute(inner.target):
                    assert isinstance(inner.target, ast.Attribute)
                    target = self._direct_annotation_type(inner.annotation)
                    if target is not None:
                        result[inner.target.attr] = target
        self._field_types_cache = result
        return result

    def _direct_annotation_type(
        self, expr: Optional[ast.expr], scope: Optional[str] = None
    ) -> Optional[TypeEntity]:
        """Resolve an annotation that names exactly one type (T, mod.T or "T")."""
        module = self._module
        if expr is None or module is None:
            return None
        if isinstance(expr, ast.Constant) and isinstance(expr.value, str):
            expr = _parse_forward_reference(expr.value)
            if expr is None:
                return None
        return self.resolver.resolve_expression(module, expr, scope)

    def _methods(self) -> List[FunctionNode]:
        node = self.type.node
        if node is None:
            return []
        return [n for n in node.body if isinstance(n, (ast.FunctionDef, ast.AsyncFunctionDef))]


def _walk_body(method: FunctionNode) -> Iterator[ast.AST]:
    """Walk a method body without descending into nested classes."""
    stack: List[ast.AST] = list(reversed(method.body))
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, ast.ClassDef):
            continue
        stack.extend(reversed(list(ast.iter_child_nodes(node))))


def _parse_forward_reference(text: str) -> Optional[ast.expr]:
    """Parse a string annotation, or None if it is not a valid expression."""
    try:
        return ast.parse(text.strip(), mode="eval").body
    except (SyntaxError, ValueError):
        return None


def _is_self_attribute(expr: ast.expr) -> bool:
    return (
        isinstance(expr, ast.Attribute)
        and isinstance(expr.value, ast.Name)
        and expr.value.id == "self"
    )

