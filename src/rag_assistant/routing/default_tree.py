"""The ``main`` decision tree for assistant responses."""

from __future__ import annotations

from rag_assistant.config import RouterConfig
from rag_assistant.routing.capabilities import (
    GreetingDetector,
    ProductIntentDetector,
    general_query_action,
    greeting_action,
    no_context_action,
    product_query_action,
)
from rag_assistant.routing.tree import (
    ActionNode,
    ConditionNode,
    DecisionRouter,
    Predicate,
    RouterNode,
)

MAIN_TREE = "main"


def build_main_tree(config: RouterConfig, context_probe: Predicate) -> RouterNode:
    """Greeting, then product intent with or without context, then general."""

    return RouterNode(
        id="root",
        description="Root decision node for assistant responses",
        children=(
            ConditionNode(
                id="check_greeting",
                description="Check if query is a greeting or small talk",
                predicate=GreetingDetector(config.greeting_terms, config.greeting_max_length),
                children=(
                    ActionNode(
                        id="handle_greeting",
                        description="Handle greeting with friendly response",
                        action=greeting_action(),
                    ),
                ),
            ),
            ConditionNode(
                id="check_product_intent",
                description="Check if query has product-related intent",
                predicate=ProductIntentDetector(
                    config.product_keywords, config.known_products
                ),
                children=(
                    ConditionNode(
                        id="check_rag_availability",
                        description="Check if retrievable context is available",
                        predicate=context_probe,
                        children=(
                            ActionNode(
                                id="use_rag",
                                description="Use retrieval for product-related query",
                                action=product_query_action(),
                            ),
                        ),
                    ),
                    ActionNode(
                        id="set_impossible_flag",
                        description="Set impossible flag when no relevant context exists",
                        action=no_context_action(),
                        metadata={"impossible_flag": True},
                    ),
                ),
            ),
            ActionNode(
                id="use_general_llm",
                description="Use general model for non-product queries",
                action=general_query_action(),
            ),
        ),
    )


def build_router(config: RouterConfig, context_probe: Predicate) -> DecisionRouter:
    return DecisionRouter({MAIN_TREE: build_main_tree(config, context_probe)})
