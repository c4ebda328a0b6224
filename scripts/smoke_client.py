#!/usr/bin/env python3
"""
Smoke test against a running call relay.

Creates a call with one socket, joins it with a second, accepts (or just
joins, under open admission), relays one offer and checks the REST view.
"""

import asyncio
import json
import os

import requests
import websockets

# Configuration
BACKEND_URL = os.getenv("RELAY_URL", "http://localhost:5000")
WS_URL = BACKEND_URL.replace("http", "ws", 1) + "/ws"


async def recv(ws, timeout=5.0):
    return json.loads(await asyncio.wait_for(ws.recv(), timeout=timeout))


async def send(ws, event, **data):
    await ws.send(json.dumps({"type": event, "data": data}))


async def expect(ws, *events):
    """Read frames until one of events shows up."""
    while True:
        msg = await recv(ws)
        if msg["type"] in events:
            return msg
        print(f"   (skipped {msg['type']})")


async def test_call_flow():
    print("🔌 Testing call flow...")

    async with websockets.connect(WS_URL) as caller, websockets.connect(WS_URL) as callee:
        caller_id = (await expect(caller, "connection-established"))["data"]["endpointId"]
        callee_id = (await expect(callee, "connection-established"))["data"]["endpointId"]
        print(f"✅ Connected: {caller_id} / {callee_id}")

        await send(caller, "create-call")
        code = (await expect(caller, "call-created"))["data"]["callCode"]
        print(f"📞 Call created: {code}")

        await send(callee, "join-call", callCode=code)
        reply = await expect(callee, "call-joined", "call-waiting-for-approval")
        if reply["type"] == "call-waiting-for-approval":
            waiting = await expect(caller, "participant-waiting")
            assert waiting["data"]["participantId"] == callee_id
            await send(caller, "accept-participant", callCode=code, participantId=callee_id)
            await expect(callee, "participant-accepted")
            await expect(caller, "participant-accepted")
        print("✅ Both endpoints in call")

        offer = {"type": "offer", "sdp": "v=0\r\n"}
        await send(caller, "send-offer", callCode=code, offer=offer)
        relayed = await expect(callee, "receive-offer")
        assert relayed["data"]["offer"] == offer
        assert relayed["data"]["from"] == caller_id
        print("✅ Offer relayed unchanged")

        state = requests.get(f"{BACKEND_URL}/calls/{code}", timeout=5).json()
        print(f"📊 {state}")
        assert state["participantCount"] == 2

        await send(callee, "leave-call", callCode=code)
        left = await expect(caller, "participant-left")
        print(f"👋 {left['data']}")


def test_rest_api():
    print("\n🌐 Testing REST API endpoints...")
    for path in ("/", "/health", "/calls/NOPE00"):
        try:
            response = requests.get(f"{BACKEND_URL}{path}", timeout=5)
            if response.status_code == 200:
                print(f"✅ {path}: {response.json()}")
            else:
                print(f"❌ {path} failed: {response.status_code}")
        except Exception as e:
            print(f"❌ {path} error: {e}")


async def main():
    print("🧪 Starting Call Relay smoke test...")
    print(f"📍 Backend URL: {BACKEND_URL}")
    print(f"🌐 WebSocket URL: {WS_URL}")
    print("=" * 50)

    test_rest_api()
    await test_call_flow()

    print("\n" + "=" * 50)
    print("🏁 Smoke test completed!")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n🛑 Interrupted by user")
    except Exception as e:
        print(f"\n❌ Smoke test failed: {e}")
        print("\n💡 Make sure the relay is running:")
        print("   call-relay")
