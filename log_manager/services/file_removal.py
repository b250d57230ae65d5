import logging

import aiofiles.os

logger = logging.getLogger(__name__)


async def remove_tolerating_disappearance(file_path: str, reason: str) -> bool:
    """
    Best-effort unlink.

    A failed unlink is only an error when the file is still there afterwards;
    if someone else removed it in the meantime the goal is reached anyway.
    """
    try:
        await aiofiles.os.remove(file_path)
        logger.info(f"Deleted {reason}: {file_path}")
        return True
    except OSError as e:
        if await aiofiles.os.path.exists(file_path):
            logger.error(f"Failed to delete {reason} {file_path}: {e}")
        else:
            logger.debug(f"{file_path} was already removed: {e}")
        return False
