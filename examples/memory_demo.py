"""
Memory engine walkthrough
=========================

Shows tier routing, cross-tier search, conversation boundaries and
recovery after a restart.

Requires:
    pip install -e .
"""

import asyncio
import os

from memflow import (
    MemoryConfig,
    MemoryContext,
    MemoryController,
    Settings,
    Speaker,
    configure_logging,
)
from memflow.storage import SQLiteKeyValueStore

DB_PATH = "demo_memory.db"


def banner(title: str):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


async def demo_routing(memory: MemoryController):
    """Where each utterance ends up."""
    banner("1. Tier routing")

    utterances = [
        ("Hi, I'm not sure where to start", MemoryContext()),
        ("Work has been really stressful lately", MemoryContext(topics=["work"], emotions=["stressed"])),
        ("I get so anxious before meetings", MemoryContext(topics=["work"], emotions=["anxious"])),
        ("My father passed away last year", MemoryContext(topics=["family"], emotions=["grief"])),
        ("I haven't slept properly in weeks", MemoryContext(topics=["sleep"], problems=["insomnia"])),
    ]

    for content, context in utterances:
        item = await memory.add_memory(content, Speaker.SUBJECT, context)
        print(f"  -> [{item.importance:.2f}] {content}")

    await memory.add_memory("That sounds exhausting. Tell me more about work.", Speaker.SYSTEM)

    for name, status in memory.get_status().items():
        if "item_count" in status:
            print(f"  {name:16s} items={status['item_count']}")


async def demo_search(memory: MemoryController):
    """Cross-tier search, deduplicated and ranked."""
    banner("2. Search")

    print("\nMemories about work:")
    for i, item in enumerate(await memory.search(keywords=["work"], limit=5), 1):
        print(f"  {i}. [{item.speaker.value}] {item.content}")

    print("\nSubject's emotional moments:")
    for item in await memory.search(speaker=Speaker.SUBJECT, emotions=["anxious", "grief"]):
        print(f"  - {item.content} {item.emotions}")

    profile = memory.get_patient_profile()
    print(f"\nTop topics: {memory.profile.get_top_topics()}")
    print(f"Dominant emotions: {memory.profile.get_dominant_emotions()}")
    print(f"Significant events: {len(profile.significant_events)}")


async def demo_boundary(memory: MemoryController):
    """A greeting after an ongoing exchange starts a new conversation."""
    banner("3. Conversation boundary")

    if memory.is_new_conversation("Hello again!"):
        print(f"\nNew conversation detected ({memory.last_boundary_reason}), resetting...")
        await memory.reset_memory()

    status = memory.get_status()
    print(f"  working:    {status['working']['item_count']} items")
    print(f"  short_term: {status['short_term']['item_count']} items")
    print(f"  long_term:  {status['long_term']['item_count']} items (kept)")
    print(f"  profile:    {status['patient_profile']['topics_count']} topics (kept)")


async def demo_recovery():
    """A new session picks up where the last one stopped."""
    banner("4. Recovery after restart")

    store = SQLiteKeyValueStore(DB_PATH)
    async with MemoryController(storage=store) as memory:
        loaded = await memory.initialize()
        print(f"\nRestored: {loaded}")

        for item in await memory.search(keywords=["father"]):
            print(f"  remembered: {item.content} (accessed {item.access_count}x)")

    await store.close()


async def main():
    configure_logging(Settings(log_format="console", log_level="WARNING"))

    if os.path.exists(DB_PATH):
        os.remove(DB_PATH)

    store = SQLiteKeyValueStore(DB_PATH)
    async with MemoryController(MemoryConfig(), storage=store) as memory:
        await memory.initialize()
        await demo_routing(memory)
        await demo_search(memory)
        await demo_boundary(memory)

    await store.close()

    await demo_recovery()

    print("\n" + "=" * 60)
    print("Done")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
