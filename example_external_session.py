"""Example of using python-easee-http with an external aiohttp.ClientSession.

This demonstrates how to pass your own session to the library, which is useful when:
- You want to manage the session lifecycle yourself
- You need to share a session between the REST calls and the stream
"""

import asyncio

import aiohttp

from easeehttp import Easee, EaseeConfig, format_observation


async def example_with_external_session():
    """Example using an external session."""
    config = EaseeConfig(
        username="user@example.com", password="secret-password", charger="EH000000"
    )
    async with aiohttp.ClientSession() as session:
        account = Easee(config=config, session=session)

        state = await account.charger_state()
        print(f"Op mode: {state['chargerOpMode'].value_text}")

        # The session is closed by the context manager, not by the library
        await account.close()


async def example_stream():
    """Example following charger updates for one minute."""
    account = Easee("user@example.com", "secret-password")

    def on_event(event, data):
        if event == "ChargerUpdate":
            print(format_observation(data))

    account.callback = on_event
    account.start()
    account.ws_start("EH000000")
    await asyncio.sleep(60)
    await account.close()


if __name__ == "__main__":
    asyncio.run(example_with_external_session())
