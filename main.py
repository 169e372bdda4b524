# main.py

import asyncio
import json
import logging
import sys
from typing import Optional

from adaptive_resources.controllers.adaptive_manager import AdaptiveResourceManager
from adaptive_resources.core.config import AdaptiveConfig
from adaptive_resources.core.utils import setup_logging
from adaptive_resources.execution.substrate import LocalExecutionSubstrate

DEFAULT_POOLS = {
    'cpu-bound': 8,
    'io-bound': 16,
    'ai-optimized': 4,
    'mixed': 12
}

class AdaptiveOrchestrator:
    def __init__(self, config_path: Optional[str] = None):
        self.logger = setup_logging(logging.INFO, "adaptive_resources")
        self.config = AdaptiveConfig.from_yaml(config_path) if config_path else AdaptiveConfig()
        self.substrate = LocalExecutionSubstrate(DEFAULT_POOLS)
        self.manager = AdaptiveResourceManager(self.substrate, self.config)

    async def run(self, report_every: int = 6):
        """Run the adaptation loop and log analytics periodically"""
        await self.manager.start()
        interval = self.config.prediction_interval / 1000.0
        ticks = 0
        try:
            while True:
                await asyncio.sleep(interval)
                ticks += 1
                if ticks % report_every == 0:
                    analytics = self.manager.get_scaling_history()
                    self.logger.info(
                        "Scaling analytics: %s",
                        json.dumps({k: v for k, v in analytics.to_dict().items() if k != 'recent_events'})
                    )
        finally:
            self.manager.shutdown()

def main():
    orchestrator = AdaptiveOrchestrator(sys.argv[1] if len(sys.argv) > 1 else None)
    try:
        asyncio.run(orchestrator.run())
    except KeyboardInterrupt:
        orchestrator.logger.info("Interrupted, shutting down")

if __name__ == "__main__":
    main()
