#!/usr/bin/env python3
"""
Demo scenario for the Fee Portal: two contexts sharing file storage.

Each context owns its own FileStore and FileSyncChannel instances pointing at
the same directory, the way two separate processes would.
"""

import asyncio
import os
import sys
import tempfile

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from feeportal.core.enums import EventType
from feeportal.main import FeePortal


def make_context(data_dir: str, context_id: str) -> FeePortal:
    config = {
        'store_type': 'file',
        'store_config': {'base_path': os.path.join(data_dir, 'store')},
        'sync_type': 'file',
        'sync_config': {'log_path': os.path.join(data_dir, 'sync.jsonl'), 'poll_interval': 0.1},
        'payment_delay': 0.3,
        'context_id': context_id,
    }
    return FeePortal(config)


async def wait_for_sync(seconds: float = 0.4):
    """Give the polling threads time to pick up the other context's write."""
    await asyncio.sleep(seconds)


async def run_demo(data_dir: str):
    print("=" * 60)
    print("FEE PORTAL - TWO CONTEXT DEMO")
    print("=" * 60)

    with make_context(data_dir, "tab-a") as tab_a, make_context(data_dir, "tab-b") as tab_b:
        print(f"\n1. Both contexts loaded {len(tab_a.auth.list_all())} students")

        print("\n2. Signup in tab-a...")
        await tab_a.auth.signup("Zoe Miller", "zoe@student.edu", "secret")
        await wait_for_sync()
        print(f"  tab-b now lists {len(tab_b.auth.list_all())} students")

        print("\n3. Logging in as Bob in tab-b and paying fees...")
        await tab_b.auth.login("bob@student.edu", "password123")
        notifications = []
        with tab_b.broadcaster.subscribe({EventType.PAYMENT_COMPLETED},
                                         lambda event: notifications.append(event.payload)):
            await tab_b.auth.pay_fees()
        print(f"  tab-b session: fees_paid={tab_b.auth.current_user.fees_paid}; events: {notifications}")

        await wait_for_sync()
        bob = next(s for s in tab_a.auth.list_all() if s.email == "bob@student.edu")
        print(f"  tab-a sees Bob fees_paid={bob.fees_paid}")

        print("\n4. Logout during a payment in tab-a...")
        await tab_a.auth.login("david@student.edu", "password123")
        payment = asyncio.ensure_future(tab_a.auth.pay_fees())
        await asyncio.sleep(0.05)
        tab_a.auth.logout()
        paid = await payment
        david = next(s for s in tab_a.auth.list_all() if s.email == "david@student.edu")
        print(f"  payment returned {paid}; David fees_paid={david.fees_paid}; "
              f"session after: {tab_a.auth.current_user}")

        stats = tab_a.auth.payment_statistics()
        print(f"\n5. {stats.paid} of {stats.total} students paid ({stats.paid_percent}%)")

    print("\n" + "=" * 60)
    print("DEMO COMPLETED SUCCESSFULLY!")
    print("=" * 60)


if __name__ == "__main__":
    with tempfile.TemporaryDirectory(prefix="feeportal-demo-") as data_dir:
        asyncio.run(run_demo(data_dir))
