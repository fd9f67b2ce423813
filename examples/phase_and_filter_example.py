# examples/phase_and_filter_example.py
"""Example showing both read modes against a simulated reader.

This script shows how to:
1. Run a few phase-difference cycles for one tag seen by antennas 1 and 2.
2. Run a background read session that counts reads of the same tag.
3. Receive delivery errors on a separate channel while counting continues.

Pass the path of a JSON config file as the first argument to override the
defaults (see uhf_phase/utils/config.py for the format).
"""

import asyncio
import logging
import random
import sys

from uhf_phase.core.driver import PhaseCycleDriver, run_filtered_session
from uhf_phase.core.events import ReadException, TagReadEvent
from uhf_phase.core.phase import PhaseCycleResult
from uhf_phase.source.mock import MockEventSource
from uhf_phase.utils.config import load_config

logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

DECOY_EPC = bytes.fromhex("E2006316963EDAB165385F6A")


def simulated_batch(target: bytes, reads_per_antenna: int) -> list[TagReadEvent]:
    """One cycle of reads: the target on both antennas plus a decoy tag."""
    offset = random.randint(-60, 60)
    batch = []
    for _ in range(reads_per_antenna):
        phase_1 = random.randint(0, 359)
        batch.append(TagReadEvent(target, antenna=1, phase=phase_1, rssi=-55, frequency=866300))
        batch.append(TagReadEvent(target, antenna=2, phase=(phase_1 - offset) % 360, rssi=-58, frequency=866300))
        batch.append(TagReadEvent(DECOY_EPC, antenna=random.choice((1, 2)), phase=random.randint(0, 359)))
    return batch


def show_cycle(result: PhaseCycleResult) -> None:
    logger.info(f"{result.total_reads} tags found. ant A: {result.antenna_a_count}, "
                f"ant B: {result.antenna_b_count}, paired: {result.paired_count}")
    for delta in result.deltas:
        logger.info(f"delta_phase: {delta}")
    if result.average_delta is None:
        logger.info("Not enough data to average this cycle.")
    else:
        logger.info(f"Average of difference phase: {result.average_delta}")


async def main(config_path: str = "uhf_phase.json"):
    config = load_config(config_path)
    target = bytes.fromhex(config.phase.target_epc)
    source = MockEventSource(name="Demo")

    for count in (3, 0, 2):
        source.add_batch(simulated_batch(target, count))

    async with source:
        # --- Batch mode: phase differences ---
        driver = PhaseCycleDriver(source, config.phase.build_sampler(), config.phase.cycle_timeout_ms)
        await driver.run(max_cycles=3, on_result=show_cycle)

        # --- Background mode: filtered counting ---
        router = config.filter.build_router(exception_sink=lambda message: logger.warning(message))
        stop_event = asyncio.Event()
        session = asyncio.create_task(
            run_filtered_session(source, router, config.filter.duration_s, stop_event=stop_event))
        await asyncio.sleep(0.1)

        source.push_events(simulated_batch(bytes.fromhex(config.filter.target_epc), 5))
        source.push_exception(ReadException("Tag ID buffer full", status_code=0x0B))
        source.push_events(simulated_batch(bytes.fromhex(config.filter.target_epc), 2))
        await source.wait_until_delivered()
        stop_event.set()

        counters = await session
        logger.info(f"Session finished: {counters.matched} matching, {counters.non_matched} non-matching")


if __name__ == "__main__":
    try:
        asyncio.run(main(*sys.argv[1:2]))
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
