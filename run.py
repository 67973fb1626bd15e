"""
LLM Orchestrator Demo

This script demonstrates the model router with:
- Routing decisions for different task types and urgencies
- Scores per candidate (performance, cost, features, heuristics)
- An end-to-end request when a provider is reachable

Run this from the project root:
    python run.py
"""

import sys
from pathlib import Path

# Add project root to Python path so we can import from src as a package
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

import asyncio
import logging

from src.llm.exceptions import OrchestratorError
from src.models.llm_models import TaskType, TimeSensitivity
from src.services.llm_service import LLMOrchestrator

# Configure logging - suppress info logs for cleaner demo output
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s - %(message)s",
)

# Create a custom logger for demo output
demo_logger = logging.getLogger("demo")
demo_logger.setLevel(logging.INFO)
demo_logger.propagate = False  # Prevent duplicate logging
handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter("%(message)s"))
demo_logger.addHandler(handler)


SCENARIOS = [
    (TaskType.CODE_GENERATION, "code_generation",
     {"language": "Python", "task": "A token bucket rate limiter"}, TimeSensitivity.NORMAL),
    (TaskType.DEBUGGING, "debugging",
     {"error": "KeyError: 'user_id'", "code": "return session['user_id']"}, TimeSensitivity.CRITICAL),
    (TaskType.GENERAL, "general",
     {"prompt": "Summarize the release notes " * 800}, TimeSensitivity.LOW),
]


async def demo_routing(orchestrator: LLMOrchestrator):
    """Show how requests are routed without calling any model."""
    demo_logger.info("=" * 70)
    demo_logger.info("DEMO 1: Routing Decisions")
    demo_logger.info("=" * 70)

    demo_logger.info(f"\nRegistered models: {', '.join(m.model_id for m in orchestrator.registry.list_models())}")

    for task_type, template_id, variables, urgency in SCENARIOS:
        messages = orchestrator.prompt_manager.render(template_id, variables)
        request = orchestrator.analyzer.build_request(
            messages, task_type=task_type, time_sensitivity=urgency,
        )
        decision = orchestrator.decision_service.decide(request)

        demo_logger.info(
            f"\n{task_type.value} ({request.complexity}, "
            f"{request.estimated_input_tokens} tokens, {urgency.value})"
        )
        demo_logger.info(f"  → {decision.selected_model_id} [{decision.reason}]")
        for candidate in decision.candidates:
            demo_logger.info(
                f"    • {candidate.model_id}: final={candidate.final_score:.3f} "
                f"(perf={candidate.performance_score:.2f}, cost={candidate.cost_score:.2f}, "
                f"features={candidate.feature_score:.2f}, est=${candidate.estimated_cost:.4f})"
            )


async def demo_request(orchestrator: LLMOrchestrator):
    """Run one request through routing, fallback and formatting."""
    demo_logger.info("\n" + "=" * 70)
    demo_logger.info("DEMO 2: End-to-End Request")
    demo_logger.info("=" * 70)

    if not orchestrator.get_available_models():
        demo_logger.info("\nNo providers configured, skipping")
        return

    try:
        result = await orchestrator.process_request(
            TaskType.GENERAL,
            "general",
            {"prompt": "Explain exponential backoff in two sentences."},
            timeout=60,
        )
    except OrchestratorError as e:
        demo_logger.info(f"\nRequest failed: {e}")
        return

    demo_logger.info(f"\n✓ Model: {result.model_used} (fallback used: {result.fallback_used})")
    demo_logger.info(f"✓ Attempts: {len(result.attempts)}")
    demo_logger.info(f"✓ Cost: ${result.total_cost:.4f}, latency: {result.latency_ms}ms")
    demo_logger.info(f"\n{result.content}")


async def main():
    """Main entry point - run all demos."""
    orchestrator = LLMOrchestrator()
    try:
        demo_logger.info("\n" + "=" * 70)
        demo_logger.info(" " * 20 + "LLM ORCHESTRATOR DEMO")
        demo_logger.info("=" * 70)

        await demo_routing(orchestrator)
        await demo_request(orchestrator)

    except KeyboardInterrupt:
        demo_logger.info("\n\nDemo interrupted by user")
    except Exception as e:
        import traceback
        demo_logger.error(f"\n\nDemo failed with error: {e}")
        demo_logger.error(f"Traceback:\n{traceback.format_exc()}")
        sys.exit(1)
    finally:
        await orchestrator.cleanup()


if __name__ == "__main__":
    asyncio.run(main())
