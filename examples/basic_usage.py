import asyncio
import logging
import sys
import os

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from adaptive_resources.controllers.adaptive_manager import AdaptiveResourceManager
from adaptive_resources.core.config import AdaptiveConfig
from adaptive_resources.core.models import (
    ActionType, ConditionOperator, PolicyCondition, ResourceAction, ResourcePolicy
)
from adaptive_resources.core.utils import setup_logging
from adaptive_resources.execution.substrate import LocalExecutionSubstrate

async def manual_adaptation():
    """Demonstrate a manually triggered adaptation cycle."""
    substrate = LocalExecutionSubstrate({'io-bound': 16, 'cpu-bound': 8})
    manager = AdaptiveResourceManager(substrate, AdaptiveConfig(conservative_mode=True))

    # Report some load so the psutil provider sees busy pools
    substrate.report_load('io-bound', active=15, queued=40, average_task_ms=220.0)
    substrate.report_load('cpu-bound', active=3, queued=0, average_task_ms=45.0)

    # Throttle intake whenever the io-bound pool saturates
    manager.update_policy(ResourcePolicy(
        name='io-saturation',
        conditions=[
            PolicyCondition('threads.io-bound', ConditionOperator.GREATER_EQUAL, 0.9)
        ],
        actions=[
            ResourceAction(
                type=ActionType.THROTTLE_REQUESTS,
                target='requests',
                magnitude=0.2,
                priority=5,
                estimated_benefit=0.5,
                estimated_cost=0.3,
                description='Throttle intake while io-bound pool is saturated'
            )
        ],
        cooldown_ms=30_000
    ))

    for prediction in await manager.get_current_predictions():
        print(f"Horizon {prediction.time_horizon_ms / 1000:.0f}s: "
              f"cpu={prediction.predicted_load.cpu:.2f} "
              f"memory={prediction.predicted_load.memory:.2f} "
              f"risk={prediction.risk_level.value} "
              f"confidence={prediction.confidence:.2f}")

    applied = await manager.optimize_resources()
    print(f"\nApplied {len(applied)} action(s):")
    for action in applied:
        print(f"  {action.type.value} -> {action.target}: {action.description}")

    print(f"\nThrottle factor: {substrate.throttle_factor:.2f}")
    print(f"Analytics: {manager.get_scaling_history().to_dict()}")

    manager.shutdown()

async def main():
    """Run basic usage example."""
    logger = setup_logging(logging.INFO, "adaptive_resources")

    try:
        await manual_adaptation()
    except Exception as e:
        logger.error(f"Error in example: {str(e)}")
        raise

if __name__ == "__main__":
    asyncio.run(main())
