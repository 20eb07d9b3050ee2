"""
Upload several modul files at once
"""
import asyncio
import os

from tusupload import BatchItem, ModulMetadata, UploadFile, UploadManager, UploadStateStore


async def main():
    token = os.environ.get("TUSUPLOAD_TOKEN")
    files = ["pertemuan-1.pdf", "pertemuan-2.pptx", "latihan.xlsx"]

    async with UploadManager(token_provider=lambda: token) as manager:
        store = UploadStateStore().attach(manager)

        slot = await store.fetch_slot(manager.client, "modul")
        if slot.error:
            print(f"Slot check failed: {slot.error}")
            return

        items = [
            BatchItem(
                UploadFile.from_path(path),
                ModulMetadata(os.path.splitext(path)[0], path.rsplit('.', 1)[-1], 2)
            )
            for path in files
        ]
        results = await manager.upload_batch(items, "/modul/upload", metadata_type="modul")

        for result in results:
            status = "ok" if result.succeeded else result.error.message
            print(f"{result.file_name}: {status}")

        print(f"Records: {[(r.file_name, r.status.value) for r in store.all()]}")


if __name__ == "__main__":
    asyncio.run(main())
