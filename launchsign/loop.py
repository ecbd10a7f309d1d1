"""Signing convergence loop graph (LangGraph StateGraph).

Graph topology:
    prepare -> sign -> measure -> decide
                                   ├── "retry"     -> advance -> prepare (loop back)
                                   ├── "converged" -> finish  -> END
                                   └── "exhausted" -> abort   -> END

prepare, sign and measure route straight to END when they record a failure.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from langgraph.graph import END, START, StateGraph
from langgraph.graph.state import CompiledStateGraph

from launchsign.config import ConvergenceConfig
from launchsign.core.errors import ConvergenceExhaustedError, SignFailure
from launchsign.models import Phase, SigningAttempt, SigningState

logger = logging.getLogger(__name__)

# prepare, sign, measure and advance run once per pass
_NODES_PER_PASS = 4


class PassDriver(Protocol):
    """File operations behind one signing pass.

    The loop decides what to do; the driver knows which files to touch.
    """

    def prepare(self, pass_index: int, guess: int) -> None:
        """Reset the working file and, after pass 0, patch its trailer."""
        ...

    def sign(self) -> None:
        """Run the signer once. Raises SignFailure on failure."""
        ...

    def measure(self) -> int:
        """Size of the signed target minus the original size."""
        ...


def _make_prepare_node(driver: PassDriver):
    async def prepare_node(state: SigningState) -> dict:
        """Restore and patch the working file for this pass."""
        try:
            await asyncio.to_thread(
                driver.prepare, state.get("pass_index", 0), state.get("guess", 0)
            )
        except SignFailure as e:
            return {"phase": Phase.ABORTED, "failure": e}
        return {"phase": Phase.PREPARE}

    return prepare_node


def _make_sign_node(driver: PassDriver):
    """Create a sign node that closes over the driver.

    asyncio.to_thread keeps the event loop non-blocking while the
    signer runs.
    """

    async def sign_node(state: SigningState) -> dict:
        try:
            await asyncio.to_thread(driver.sign)
        except SignFailure as e:
            return {"phase": Phase.ABORTED, "failure": e}
        return {"phase": Phase.INVOKE}

    return sign_node


def _make_measure_node(driver: PassDriver):
    async def measure_node(state: SigningState) -> dict:
        """Compare the signed size with the size we predicted."""
        try:
            delta = driver.measure()
        except SignFailure as e:
            return {"phase": Phase.ABORTED, "failure": e}

        attempt = SigningAttempt(
            pass_index=state.get("pass_index", 0),
            applied_guess=state.get("guess", 0),
            observed_delta=delta,
        )
        logger.debug(
            "Pass %d: guessed %d, signature added %d bytes",
            attempt.pass_index,
            attempt.applied_guess,
            attempt.observed_delta,
        )
        return {
            "phase": Phase.MEASURE,
            "delta": delta,
            "history": state.get("history", []) + [attempt],
        }

    return measure_node


async def advance_node(state: SigningState) -> dict:
    """Adopt the observed signature size as the next guess."""
    return {
        "phase": Phase.DECIDE,
        "guess": state.get("delta", 0),
        "pass_index": state.get("pass_index", 0) + 1,
    }


async def finish_node(state: SigningState) -> dict:
    return {"phase": Phase.DONE}


def _make_abort_node(config: ConvergenceConfig):
    async def abort_node(state: SigningState) -> dict:
        """Record that the pass budget ran out."""
        max_passes = state.get("max_passes", config.max_passes)
        return {
            "phase": Phase.ABORTED,
            "failure": ConvergenceExhaustedError(
                f"Signature size did not stabilize after {max_passes} passes",
                max_passes=max_passes,
            ),
        }

    return abort_node


def route_on_failure(state: SigningState) -> str:
    """Conditional edge after prepare/sign/measure."""
    return "failed" if state.get("failure") is not None else "ok"


def _make_decide(config: ConvergenceConfig):
    """Create the transition function that captures config.

    LangGraph conditional edge functions only receive state.
    Config access is closed over via this factory.
    """

    def decide(state: SigningState) -> str:
        """Conditional edge: decide whether to stop or sign again.

        Returns:
            "converged" -> the signature is exactly as large as guessed
            "retry"     -> sign again with the observed size as the guess
            "exhausted" -> max_passes signing attempts have been made
        """
        guess = state.get("guess", 0)
        delta = state.get("delta")
        pass_index = state.get("pass_index", 0)
        max_passes = state.get("max_passes", config.max_passes)

        if delta == guess:
            return "converged"
        if pass_index + 1 >= max_passes:
            return "exhausted"
        return "retry"

    return decide


def _make_route_after_measure(config: ConvergenceConfig):
    decide = _make_decide(config)

    def route_after_measure(state: SigningState) -> str:
        if route_on_failure(state) == "failed":
            return "failed"
        return decide(state)

    return route_after_measure


def recursion_limit_for(max_passes: int) -> int:
    """LangGraph step budget that fits max_passes full passes."""
    return _NODES_PER_PASS * max_passes + 8


def build_signing_graph(
    driver: PassDriver,
    config: ConvergenceConfig = ConvergenceConfig(),
) -> CompiledStateGraph:
    """Build the signing convergence loop as a LangGraph StateGraph.

    Args:
        driver: Performs the file operations and runs the signer.
        config: Controls the pass budget.

    Returns a compiled StateGraph ready to invoke.
    """
    graph = StateGraph(SigningState)

    graph.add_node("prepare", _make_prepare_node(driver))
    graph.add_node("sign", _make_sign_node(driver))
    graph.add_node("measure", _make_measure_node(driver))
    graph.add_node("advance", advance_node)
    graph.add_node("finish", finish_node)
    graph.add_node("abort", _make_abort_node(config))

    graph.add_edge(START, "prepare")
    graph.add_conditional_edges(
        "prepare", route_on_failure, {"ok": "sign", "failed": END}
    )
    graph.add_conditional_edges(
        "sign", route_on_failure, {"ok": "measure", "failed": END}
    )
    graph.add_conditional_edges(
        "measure",
        _make_route_after_measure(config),
        {
            "converged": "finish",
            "retry": "advance",
            "exhausted": "abort",
            "failed": END,
        },
    )
    graph.add_edge("advance", "prepare")
    graph.add_edge("finish", END)
    graph.add_edge("abort", END)

    return graph.compile()


async def run_signing_loop(
    driver: PassDriver,
    config: ConvergenceConfig = ConvergenceConfig(),
) -> SigningState:
    """Run the loop to completion and return the final state.

    A failed run ends with phase ABORTED and the failure in state["failure"];
    nothing is raised from here.
    """
    graph = build_signing_graph(driver, config)
    initial: SigningState = {
        "phase": Phase.HAS_TRAILER,
        "pass_index": 0,
        "max_passes": config.max_passes,
        "guess": 0,
        "delta": None,
        "history": [],
        "failure": None,
    }
    return await graph.ainvoke(
        initial, config={"recursion_limit": recursion_limit_for(config.max_passes)}
    )
