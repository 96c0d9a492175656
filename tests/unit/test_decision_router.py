import pytest

from rag_assistant.errors import TreeNotFoundError
from rag_assistant.routing.tree import (
    ActionNode,
    ActionOutcome,
    ConditionNode,
    DecisionContext,
    DecisionRouter,
    RouterNode,
)


class _Fixed:
    def __init__(self, value) -> None:
        self.value = value
        self.calls = 0

    async def evaluate(self, context: DecisionContext):
        self.calls += 1
        return self.value


class _Answer:
    def __init__(self, intent: str, confidence: float = 0.5, impossible: bool = False) -> None:
        self.intent = intent
        self.confidence = confidence
        self.impossible = impossible

    async def act(self, context: DecisionContext) -> ActionOutcome:
        return ActionOutcome(
            payload={"intent": self.intent},
            confidence=self.confidence,
            impossible_flag=self.impossible,
        )


def _tree(first_condition, second_condition=True) -> RouterNode:
    return RouterNode(
        id="root",
        description="root",
        children=(
            ConditionNode(
                id="first",
                description="first check",
                predicate=_Fixed(first_condition),
                children=(ActionNode(id="first_action", description="a", action=_Answer("one")),),
            ),
            ConditionNode(
                id="second",
                description="second check",
                predicate=_Fixed(second_condition),
                children=(ActionNode(id="second_action", description="b", action=_Answer("two")),),
            ),
            ActionNode(id="fallback", description="c", action=_Answer("fallback")),
        ),
    )


@pytest.mark.asyncio
async def test_first_matching_branch_wins() -> None:
    router = DecisionRouter({"main": _tree(True)})

    result = await router.execute("main", DecisionContext(query="q"))

    assert result.path == ["root", "first", "first_action"]
    assert result.result == {"intent": "one", "confidence": 0.5}
    assert [step.node_id for step in result.decisions] == ["first", "first_action"]
    assert result.decisions[0].confidence == 0.9
    assert result.impossible_flag is False


@pytest.mark.asyncio
async def test_false_condition_falls_through_to_sibling() -> None:
    router = DecisionRouter({"main": _tree(False, False)})
    context = DecisionContext(query="q")

    result = await router.execute("main", context)

    assert result.path == ["root", "first", "second", "fallback"]
    assert result.result["intent"] == "fallback"
    assert [step.confidence for step in result.decisions] == [0.1, 0.1, 0.5]
    assert context.previous_decisions == result.decisions


@pytest.mark.asyncio
async def test_non_boolean_condition_scores_half_confidence() -> None:
    tree = ConditionNode(
        id="maybe",
        description="returns a label",
        predicate=_Fixed("label"),
        children=(ActionNode(id="act", description="act", action=_Answer("x", 0.7)),),
    )
    router = DecisionRouter({"t": tree})

    result = await router.execute("t", DecisionContext(query="q"))

    assert result.decisions[0].decision == "label"
    assert result.decisions[0].confidence == 0.5
    assert result.decisions[1].confidence == 0.7


@pytest.mark.asyncio
async def test_no_match_returns_empty_result_with_path() -> None:
    tree = RouterNode(
        id="root",
        description="root",
        children=(
            ConditionNode(
                id="never",
                description="never",
                predicate=_Fixed(False),
                children=(ActionNode(id="unreached", description="", action=_Answer("x")),),
            ),
            ConditionNode(id="empty", description="no children", predicate=_Fixed(True)),
        ),
    )
    router = DecisionRouter({"t": tree})

    result = await router.execute("t", DecisionContext(query="q"))

    assert result.result is None
    assert result.path == ["root", "never", "empty"]
    assert result.impossible_flag is False


@pytest.mark.asyncio
async def test_impossible_action_sets_result_flag() -> None:
    tree = RouterNode(
        id="root",
        description="root",
        children=(
            ActionNode(
                id="give_up",
                description="nothing known",
                action=_Answer("none", 0.85, impossible=True),
                metadata={"impossible_flag": True},
            ),
        ),
    )
    router = DecisionRouter({"t": tree})

    result = await router.execute("t", DecisionContext(query="q"))

    assert result.impossible_flag is True
    assert result.result["impossible_flag"] is True
    assert result.decisions[-1].impossible_flag is True
    assert "impossible flag set" in router.visualize_path(result)


@pytest.mark.asyncio
async def test_execution_is_deterministic_and_serializable() -> None:
    router = DecisionRouter({"main": _tree(False, True)})

    first = await router.execute("main", DecisionContext(query="q"))
    second = await router.execute("main", DecisionContext(query="q"))

    assert first.path == second.path
    assert first.result == second.result
    payload = first.to_dict()
    assert payload["path"] == ["root", "first", "second", "second_action"]
    assert payload["decisions"][0]["node_id"] == "first"
    assert isinstance(payload["decisions"][0]["timestamp"], str)


@pytest.mark.asyncio
async def test_unknown_tree_raises() -> None:
    router = DecisionRouter()

    with pytest.raises(TreeNotFoundError) as excinfo:
        await router.execute("missing", DecisionContext(query="q"))
    assert str(excinfo.value) == "Decision tree 'missing' not found"
    with pytest.raises(KeyError):
        router.get_tree("missing")


def test_register_rejects_duplicate_ids_and_shared_nodes() -> None:
    leaf = ActionNode(id="leaf", description="", action=_Answer("x"))
    router = DecisionRouter()

    with pytest.raises(ValueError):
        router.register(
            "dupe",
            RouterNode(
                id="root",
                description="",
                children=(leaf, ActionNode(id="leaf", description="", action=_Answer("y"))),
            ),
        )
    with pytest.raises(ValueError):
        router.register("twice", RouterNode(id="root", description="", children=(leaf, leaf)))

    router.register("a", RouterNode(id="root", description="", children=(leaf,)))
    with pytest.raises(ValueError):
        router.register("b", RouterNode(id="root", description="", children=(leaf,)))
    assert router.tree_names == ["a"]


@pytest.mark.asyncio
async def test_route_runs_main_tree_with_fresh_context() -> None:
    predicate = _Fixed(True)
    tree = ConditionNode(
        id="check",
        description="",
        predicate=predicate,
        children=(ActionNode(id="done", description="", action=_Answer("ok")),),
    )
    router = DecisionRouter({"main": tree})

    result = await router.route("hello", product_name="Widget", metadata={"channel": "web"})

    assert result.result["intent"] == "ok"
    assert predicate.calls == 1
    assert "check: True (confidence: 0.90)" in router.visualize_path(result)
