"""
Pause, resume and cancel uploads
"""
import asyncio
import os

from tusupload import ProjectMetadata, UploadManager


async def main():
    token = os.environ.get("TUSUPLOAD_TOKEN")

    async with UploadManager(token_provider=lambda: token) as manager:
        upload_id = await manager.start_upload(
            "sistem-parkir.zip",
            "/project/upload",
            metadata=ProjectMetadata(
                "Sistem Parkir Otomatis", "iot", 5,
                filename="sistem-parkir.zip", filetype="application/zip"
            ),
            poll_for_slot=True,
            check_slot=True,
        )

        await asyncio.sleep(2)
        await manager.pause_upload(upload_id)
        print(f"Paused at {manager.get_progress(upload_id).percentage}%")

        # The server offset wins over the local one
        await manager.resume_upload(upload_id)
        outcome = await manager.wait(upload_id)
        print(f"Finished: {outcome.state.value}")

        # Replace the archive of project 12 without touching its metadata
        upload_id = await manager.start_upload(
            "sistem-parkir-v2.zip",
            "/project/upload",
            is_update=True,
            resource_id=12,
        )
        await manager.cancel_upload(upload_id)
        print(f"Cancelled {upload_id}")


if __name__ == "__main__":
    asyncio.run(main())
