# watch_session.py

import asyncio
import logging

from tendercost.services.client_session import create_client_session

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("watch_session")


async def main():
    print("Starting client session (anonymous sign-in if needed)...")

    session = await create_client_session()
    session.add_listener(
        lambda state: logger.info(
            "principal=%s profile=%s loading=%s error=%s",
            state.principal.id if state.principal else None,
            state.profile.model_dump() if state.profile else None,
            state.is_loading,
            state.error,
        )
    )
    await session.start()
    try:
        state = await session.wait_ready(timeout=30)
        if state.error is not None:
            print(f"Session failed: {state.error}")
            return
        print("Session ready. Watching profile updates, Ctrl+C to stop.")
        await asyncio.Event().wait()
    finally:
        await session.aclose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
