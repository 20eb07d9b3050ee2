"""
Upload a modul document with progress
"""
import asyncio
import os

from tusupload import ModulMetadata, ProgressFormatter, UploadCallbacks, UploadManager, TUSError


async def main():
    token = os.environ.get("TUSUPLOAD_TOKEN")

    async with UploadManager(token_provider=lambda: token) as manager:

        def on_progress(progress):
            print(ProgressFormatter.format_progress_summary(progress))

        try:
            upload_id = await manager.start_upload(
                "modul.pdf",
                "/modul/upload",
                metadata=ModulMetadata("Modul Basis Data", "pdf", 3),
                callbacks=UploadCallbacks(on_progress=on_progress),
                check_slot=True,
            )
        except TUSError as e:
            print(f"Upload rejected: {e.message}")
            for field_error in e.field_errors:
                print(f"  {field_error.field}: {field_error.message}")
            return

        outcome = await manager.wait(upload_id)
        print(f"Upload {upload_id}: {outcome.state.value}")


if __name__ == "__main__":
    asyncio.run(main())
