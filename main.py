"""Simple entrypoint to run the StyleSphere closet core locally."""

import asyncio

from closet_app.app import StyleSphereApp
from closet_app.config import AppConfig

_PIXEL = b"\x89PNG\r\n\x1a\n demo"


async def _demo() -> None:
    config = AppConfig.from_env()
    if not config.remote_configured:
        config.document_backend = "memory"
        config.blob_backend = "mock"
    app = StyleSphereApp(config)
    session = await app.start()
    print(f"Signed in as {session.display_name}")

    for category, filename in (("Tops", "tee.png"), ("Bottoms", "jeans.png"), ("Footwear", "boots.png")):
        await app.upload_closet_item(category, {"filename": filename, "content_type": "image/png", "data": _PIXEL})
    await app.mirror.settle()

    print(f"Closet items: {len(app.my_closet())}")
    print(f"Current outfit: {app.current_outfit()}")
    await app.shutdown()


def main() -> None:
    asyncio.run(_demo())


if __name__ == "__main__":
    main()
