"""Decision-tree query router.

A tree is made of three node kinds:

- ``RouterNode``: pure dispatch, tries its children in declaration order.
- ``ConditionNode``: evaluates a ``Predicate``; on a truthy outcome it descends
  into its children in declaration order.
- ``ActionNode``: terminal; runs an ``Action`` whose outcome becomes the result
  of the whole traversal.

Traversal is depth-first along a single path and stops at the first action.
Declaration order is priority order. Every visited node id is appended to
``DecisionResult.path``; condition and action evaluations are recorded as
``DecisionStep`` entries on both the context and the result.

Predicates and actions are capability objects, not inline functions, so a
tree can be inspected and each capability tested on its own.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, Union

from rag_assistant.errors import TreeNotFoundError
from rag_assistant.types import DecisionResult, DecisionStep

logger = logging.getLogger(__name__)

DEFAULT_ACTION_CONFIDENCE = 0.5


@dataclass(slots=True)
class DecisionContext:
    """Per-query mutable state; never shared between queries."""

    query: str
    product_name: str | None = None
    previous_decisions: list[DecisionStep] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ActionOutcome:
    payload: dict[str, Any]
    confidence: float = DEFAULT_ACTION_CONFIDENCE
    impossible_flag: bool = False

    def as_result(self) -> dict[str, Any]:
        result = {**self.payload, "confidence": self.confidence}
        if self.impossible_flag:
            result["impossible_flag"] = True
        return result


class Predicate(Protocol):
    async def evaluate(self, context: DecisionContext) -> Any:
        """Return a boolean (or other truthy/falsy value) for the context."""


class Action(Protocol):
    async def act(self, context: DecisionContext) -> ActionOutcome:
        """Produce the terminal outcome for the context."""


@dataclass(frozen=True, slots=True, eq=False)
class RouterNode:
    id: str
    description: str
    children: tuple["DecisionNode", ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True, eq=False)
class ConditionNode:
    id: str
    description: str
    predicate: Predicate
    children: tuple["DecisionNode", ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True, eq=False)
class ActionNode:
    id: str
    description: str
    action: Action
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def children(self) -> tuple["DecisionNode", ...]:
        return ()


DecisionNode = Union[RouterNode, ConditionNode, ActionNode]


def iter_nodes(root: DecisionNode) -> Iterator[DecisionNode]:
    """Yield every node of a tree in depth-first declaration order."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def condition_confidence(outcome: Any) -> float:
    if isinstance(outcome, bool):
        return 0.9 if outcome else 0.1
    return 0.5


class DecisionRouter:
    """Registry of named decision trees and their traversal engine.

    Registered trees are read-only, so one router can serve concurrent
    queries as long as each query brings its own ``DecisionContext``.
    """

    def __init__(self, trees: Mapping[str, DecisionNode] | None = None) -> None:
        self._trees: dict[str, DecisionNode] = {}
        self._owned: dict[str, set[int]] = {}
        for name, root in (trees or {}).items():
            self.register(name, root)

    @property
    def tree_names(self) -> list[str]:
        return list(self._trees)

    def register(self, name: str, root: DecisionNode) -> None:
        """Add or replace a tree after checking it is a proper tree.

        Raises:
            ValueError: when a node id repeats, a node object appears twice,
                or a node already belongs to another registered tree.
        """

        seen_ids: set[str] = set()
        seen_nodes: set[int] = set()
        claimed = {
            node_key
            for tree_name, keys in self._owned.items()
            if tree_name != name
            for node_key in keys
        }
        for node in _walk_checked(root, seen_nodes):
            if node.id in seen_ids:
                raise ValueError(f"Duplicate node id '{node.id}' in tree '{name}'")
            if id(node) in claimed:
                raise ValueError(f"Node '{node.id}' already belongs to another tree")
            seen_ids.add(node.id)

        self._trees[name] = root
        self._owned[name] = seen_nodes

    def get_tree(self, name: str) -> DecisionNode:
        root = self._trees.get(name)
        if root is None:
            raise TreeNotFoundError(name)
        return root

    async def execute(self, tree_name: str, context: DecisionContext) -> DecisionResult:
        root = self.get_tree(tree_name)
        result = DecisionResult()
        await self._traverse(root, context, result)
        logger.debug(
            "Decision tree %s path=%s impossible=%s",
            tree_name,
            " > ".join(result.path),
            result.impossible_flag,
        )
        return result

    async def route(
        self,
        query: str,
        *,
        product_name: str | None = None,
        metadata: dict[str, Any] | None = None,
        tree_name: str = "main",
    ) -> DecisionResult:
        context = DecisionContext(
            query=query, product_name=product_name, metadata=dict(metadata or {})
        )
        return await self.execute(tree_name, context)

    async def _traverse(
        self, node: DecisionNode, context: DecisionContext, result: DecisionResult
    ) -> ActionOutcome | None:
        result.path.append(node.id)

        if isinstance(node, ActionNode):
            outcome = await node.action.act(context)
            self._record(
                context,
                result,
                DecisionStep(
                    node_id=node.id,
                    decision=outcome.as_result(),
                    reasoning=node.description,
                    confidence=outcome.confidence,
                    impossible_flag=outcome.impossible_flag,
                ),
            )
            result.result = outcome.as_result()
            if outcome.impossible_flag:
                result.impossible_flag = True
            return outcome

        if isinstance(node, ConditionNode):
            decision = await node.predicate.evaluate(context)
            self._record(
                context,
                result,
                DecisionStep(
                    node_id=node.id,
                    decision=decision,
                    reasoning=node.description,
                    confidence=condition_confidence(decision),
                    impossible_flag=node.metadata.get("impossible_flag"),
                ),
            )
            if not decision:
                return None

        for child in node.children:
            outcome = await self._traverse(child, context, result)
            if outcome is not None:
                return outcome
        return None

    @staticmethod
    def _record(context: DecisionContext, result: DecisionResult, step: DecisionStep) -> None:
        context.previous_decisions.append(step)
        result.decisions.append(step)

    @staticmethod
    def visualize_path(result: DecisionResult) -> str:
        lines = ["Decision Path:"]
        for depth, step in enumerate(result.decisions):
            indent = "  " * depth
            decision = step.decision
            if isinstance(decision, dict):
                decision = decision.get("intent", decision)
            lines.append(
                f"{indent}├─ {step.node_id}: {decision} (confidence: {step.confidence:.2f})"
            )
            if step.impossible_flag:
                lines.append(f"{indent}   ! impossible flag set")
        return "\n".join(lines)


def _walk_checked(root: DecisionNode, seen: set[int]) -> Iterator[DecisionNode]:
    for node in iter_nodes(root):
        if id(node) in seen:
            raise ValueError(f"Node '{node.id}' appears more than once in the tree")
        seen.add(id(node))
        yield node
