#!/usr/bin/env python3
"""
DLMM 单边稳定币做市策略启动脚本

使用方法:
    python run_strategy.py                                   # 使用默认配置
    python run_strategy.py --config dlmm_flip_usdc_usdt.yml  # 指定配置文件
    python run_strategy.py --serve-status                    # 同时启动状态 API
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from bots.controllers.generic.dlmm_flip import DLMMFlipController, load_config
from config import settings
from services.dlmm_gateway_client import DLMMGatewayClient
from utils.logging_setup import configure_logging

logger = logging.getLogger("run_strategy")


def resolve_config_path(name: Optional[str]) -> Path:
    name = name or settings.app.default_controller_config
    path = Path(name)
    if path.exists():
        return path
    if not name.endswith(".yml"):
        name = f"{name}.yml"
    return Path(__file__).parent / settings.app.controllers_path / name


async def run(args: argparse.Namespace) -> int:
    config_path = resolve_config_path(args.config)
    config = load_config(config_path, sender_address=settings.app.sender_address or None)
    if not config.sender_address:
        logger.error("sender_address is required (config file or SENDER_ADDRESS)")
        return 1

    async with DLMMGatewayClient(
        settings.gateway.url,
        network=config.network,
        timeout_seconds=settings.gateway.timeout_seconds,
    ) as gateway:
        controller = DLMMFlipController(config, gateway)
        server = None
        tasks = [asyncio.create_task(controller.start())]
        if args.serve_status:
            import uvicorn

            from routers.strategy_status import create_app

            server = uvicorn.Server(uvicorn.Config(
                create_app(controller),
                host=settings.status_server.host,
                port=settings.status_server.port,
                log_level="warning",
            ))
            tasks.append(asyncio.create_task(server.serve()))

        def _shutdown(sig_name: str) -> None:
            logger.info("signal_received | signal=%s", sig_name)
            controller.stop()
            if server is not None:
                server.should_exit = True

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _shutdown, sig.name)

        try:
            await asyncio.gather(*tasks)
        except Exception:
            logger.exception("strategy_startup_failed | config=%s", config_path)
            controller.stop()
            if server is not None:
                server.should_exit = True
            # Let an in-flight rebalance finish before the gateway client closes.
            await asyncio.gather(*tasks, return_exceptions=True)
            return 1
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="DLMM single-sided stablecoin flip strategy")
    parser.add_argument("--config", help="controller config file name or path")
    parser.add_argument("--log-level", default=None, help="override LOG_LEVEL")
    parser.add_argument("--serve-status", action="store_true", help="serve the status API alongside the strategy")
    args = parser.parse_args()

    configure_logging(args.log_level or settings.logging.level, settings.logging.suppress_http_logs)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
