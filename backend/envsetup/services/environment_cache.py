"""
Process-wide cache of the selected environment id.
"""

import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

ENV_ID_VARIABLE = "CLOUDENV_ENV_ID"


class EnvironmentCache:
    """
    Holds the last selected environment id for this process.

    The id is also exported as CLOUDENV_ENV_ID so child tools started from
    this process see the same environment.
    """

    def __init__(self):
        self._env_id: Optional[str] = None

    def get(self) -> Optional[str]:
        return self._env_id

    def set(self, env_id: str) -> None:
        logger.debug(f"Caching environment {env_id}")
        self._env_id = env_id
        os.environ[ENV_ID_VARIABLE] = env_id

    def reset(self) -> None:
        self._env_id = None
        os.environ.pop(ENV_ID_VARIABLE, None)
