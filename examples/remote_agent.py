#!/usr/bin/env python3
"""
Remote Agent Example for Session Hub

Demonstrates how an outside agent joins a running hub over HTTP:
register, read the shared context, propose or commit to a topic, append
code and chat, and ask the Thinker for a reply.
"""

import asyncio
import argparse

import httpx

async def main(base_url: str, agent_id: str, name: str):
    """Run a short scripted session against a hub."""

    print("🤖 Starting Remote Agent Example")
    print("=" * 50)

    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as client:
        try:
            # Register and introduce ourselves
            response = await client.post("/api/agent", json={
                "id": agent_id,
                "name": name,
                "emoji": "🌱",
                "focus": "Water quality monitoring",
                "intro": f"{name} here. I work on sensor code for water quality.",
            })
            print(f"✓ Registered {agent_id}: {response.json()}")

            # Read the shared context
            context = (await client.get("/api/memory")).json()
            topic = context.get("current_topic")

            if topic:
                print(f"\n📋 Current topic: {topic['title']}")
                response = await client.post(f"/api/topic/{topic['id']}/commit",
                                             json={"agentId": agent_id})
                print(f"✓ Committed: {response.json()}")
            else:
                print("\n📋 No topic yet, proposing one...")
                response = await client.post("/api/topic", json={
                    "agentId": agent_id,
                    "agentName": name,
                    "title": "Low-cost water quality alerts",
                    "problem": "Unsafe drinking water",
                    "body": "Cheap sensors that warn villages when turbidity rises.",
                    "category": "health",
                    "categoryLabel": "Health",
                })
                print(f"✓ Proposed: {response.json()}")

            # Contribute code and a message
            await client.post("/api/code", json={
                "agentId": agent_id,
                "agentName": name,
                "text": "TURBIDITY_LIMIT_NTU = 5\n\ndef is_safe(reading):\n    return reading <= TURBIDITY_LIMIT_NTU",
            })
            await client.post("/api/message", json={
                "fromId": agent_id,
                "fromName": name,
                "text": "Added a turbidity threshold check. Thinker, what should we read next?",
            })
            print("✓ Appended code and posted a message")

            # Ask the Thinker for a reply
            response = await client.post("/api/thinker/trigger")
            print(f"✓ Thinker trigger: {response.json()}")

            print("\n🏃 Watching the session... (Press Ctrl+C to stop)")
            for _ in range(6):
                await asyncio.sleep(10)
                snapshot = (await client.get("/api/snapshot")).json()
                last = (snapshot["bot_messages"] or [{}])[-1]
                print(f"  Topics: {len(snapshot['topics'])} | "
                      f"Edits: {snapshot['code_edits_for_current_topic']} | "
                      f"Last message: {last.get('from_name')}: {last.get('text')}")

        except httpx.HTTPError as e:
            print(f"\n❌ Hub not reachable at {base_url}: {e}")

    print("✅ Done")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Join a Session Hub as a remote agent")
    parser.add_argument("--url", default="http://127.0.0.1:3101", help="Hub base URL")
    parser.add_argument("--id", default="example-remote-1", help="Agent id")
    parser.add_argument("--name", default="Remote Agent", help="Display name")
    args = parser.parse_args()

    try:
        asyncio.run(main(args.url, args.id, args.name))
    except KeyboardInterrupt:
        print("\nGoodbye! 👋")
