"""Seed a demo hub with a short conversation and a couple of broadcasts."""

import asyncio
from datetime import timedelta

import hubcomm.models  # noqa: F401
from hubcomm.models.broadcast import BroadcastPriority, BroadcastType
from hubcomm.services.container import HubServices
from hubcomm.services.mentions import encode_mention

HUB_ID = "demo-hub"

MEMBERS = {
    "u1": "Alice Builder",
    "u2": "Bob Designer",
    "u3": "Charlie Research",
}


async def async_main():
    services = HubServices.build()
    await services.store.create_all()

    bob = encode_mention(MEMBERS["u2"], "u2")
    script = [
        ("u1", "Morning all, stand-up in ten minutes."),
        ("u3", "On my way."),
        ("u1", f"{bob} can you bring the new mockups?"),
        ("u2", "Yes, printing them now."),
    ]
    for sender_id, text in script:
        message = await services.messages.send(HUB_ID, sender_id, MEMBERS[sender_id], text)
        print(f"Added message {message.id} from {message.sender_name}")

    await services.broadcasts.create(
        HUB_ID, "u1", MEMBERS["u1"], "Welcome", "This hub is for the spring cohort.",
    )
    alert = await services.broadcasts.create(
        HUB_ID, "u1", MEMBERS["u1"], "Fire drill", "Leave by the east stairs at 14:00.",
        BroadcastType.EMERGENCY, BroadcastPriority.URGENT, expires_after=timedelta(hours=2),
    )
    print(f"Added broadcast {alert.id} (expires {alert.expires_at:%H:%M})")

    await services.close()
    await services.store.close()
    print(f"Seeded hub {HUB_ID}")


if __name__ == "__main__":
    asyncio.run(async_main())
