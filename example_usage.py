#!/usr/bin/env python3
"""
Example usage script for CodeSynapse

This script builds the dependency graph of a directory without starting the
web server, prints a summary, then follows live changes for a while and logs
every update that a connected client would receive.
"""

import argparse
import asyncio
import os
from collections import Counter
from pathlib import Path

from codesynapse.orchestrator import UpdateOrchestrator
from codesynapse.server.channel import QueueChannel, encode_message
from codesynapse.types import GraphInit, StatsUpdate
from codesynapse.utils.logger import app_logger


class GraphDemo:
    """Demonstration of the watch, build and update workflow."""

    def __init__(self, root: str, duration: float):
        self.logger = app_logger.bind(component="demo")
        self.root = str(Path(root).resolve())
        self.duration = duration
        self.channel = QueueChannel()
        self.orchestrator = UpdateOrchestrator(self.channel)

    def summarize(self, init: GraphInit):
        graph = init.graph
        self.logger.info(f"Graph for {self.root}: {len(graph.nodes)} files, {len(graph.links)} links")

        by_type = Counter(node.file_type.value for node in graph.nodes)
        for file_type, count in by_type.most_common():
            self.logger.info(f"  {file_type:<12} {count}")

        hubs = sorted(graph.nodes, key=lambda n: n.connection_count, reverse=True)[:5]
        for node in hubs:
            if node.connection_count:
                self.logger.info(f"  hub: {os.path.relpath(node.id, self.root)} ({node.connection_count} connections)")

    async def follow(self):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.duration
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return
            try:
                message = await self.channel.receive(timeout=remaining)
            except asyncio.TimeoutError:
                return

            if isinstance(message, GraphInit):
                self.summarize(message)
            elif isinstance(message, StatsUpdate):
                stats = message.stats
                self.logger.info(
                    f"Stats: {stats.file_count} files, {stats.connection_count} links, {stats.change_count} changes"
                )
            else:
                self.logger.info(f"{message.event}: {encode_message(message)['data']}")

    async def run(self) -> bool:
        self.logger.info(f"Watching {self.root} for {self.duration:.0f}s, edit some files to see updates")
        if not await self.orchestrator.start(self.root):
            for message in self.channel.drain_nowait():
                self.logger.error(encode_message(message)["data"])
            return False
        try:
            await self.follow()
        finally:
            self.orchestrator.stop()
        return True


def main():
    parser = argparse.ArgumentParser(description="Build and follow a dependency graph without the web UI")
    parser.add_argument("path", nargs="?", default=".", help="Directory to watch")
    parser.add_argument("--duration", type=float, default=30.0, help="Seconds to follow changes")
    args = parser.parse_args()

    ok = asyncio.run(GraphDemo(args.path, args.duration).run())
    raise SystemExit(0 if ok else 1)


if __name__ == "__main__":
    main()
