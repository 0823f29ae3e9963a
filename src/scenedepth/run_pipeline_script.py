import asyncio
import json
import mimetypes
import os
from typing import Optional

from scenedepth.core.container import ServiceContainer
from scenedepth.core.exceptions import ScenedepthError
from scenedepth.infrastructure.image_resolver import decode_data_url
from scenedepth.processing.payloads import UploadedFile

# Configuration (can be overridden via environment variables)
IMAGE_FILE_PATH = os.getenv("IMAGE_FILE_PATH", "sample.jpg")
OUTPUT_DIR = os.getenv("OUTPUT_DIR", "output")


async def run_pipeline(file_path: str, output_dir: str, container: Optional[ServiceContainer] = None) -> Optional[dict]:
    """Run the upload pipeline in-process on a local file.

    Writes `depth.jpg`, `background.jpg` (when produced) and `result.json`
    into output_dir. Returns the result as a dict, or None on failure.
    """
    print(f"Checking for file at: {file_path}")
    if not os.path.exists(file_path):
        print(f"Error: File not found at {file_path}")
        return None

    content_type = mimetypes.guess_type(file_path)[0] or "application/octet-stream"
    with open(file_path, "rb") as fh:
        upload = UploadedFile(content=fh.read(), filename=os.path.basename(file_path), content_type=content_type)

    container = container or ServiceContainer()
    await container.startup()
    try:
        print(f"Processing {upload.filename} ({content_type})")
        result = await container.session.start_upload(upload)
    except ScenedepthError as e:
        print(f"Pipeline failed: {e}")
        return None
    finally:
        await container.shutdown()

    os.makedirs(output_dir, exist_ok=True)
    with open(os.path.join(output_dir, "depth.jpg"), "wb") as fh:
        fh.write(decode_data_url(result.depth_map_url))
    if result.background_url:
        with open(os.path.join(output_dir, "background.jpg"), "wb") as fh:
            fh.write(decode_data_url(result.background_url))

    # Data and blob URLs are large or process-local; keep the JSON readable.
    result_json = result.model_dump(mode="json", exclude={"depth_map_url", "background_url", "image_url"})
    out_path = os.path.join(output_dir, "result.json")
    with open(out_path, "w", encoding="utf-8") as fh:
        json.dump(result_json, fh, indent=2)
    print(f"Saved depth map and result JSON to {output_dir}")
    return result_json


if __name__ == "__main__":
    print("--- Starting script ---")
    output = asyncio.run(run_pipeline(IMAGE_FILE_PATH, OUTPUT_DIR))
    if output is not None:
        print("Pipeline run completed successfully.")
    else:
        print("Pipeline run failed.")
    print("--- Script finished ---")
