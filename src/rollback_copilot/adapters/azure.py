"""Azure App Service slot-swap backend.

Shells out to the Azure CLI:

    az webapp deployment slot swap --resource-group RG --name APP \
        --slot staging --target-slot production

Swapping the same two slots again is the rollback: whatever was live before
the last swap sits in the source slot. stderr is classified to decide
whether the executor may retry.
"""

import asyncio
import logging
import re

from rollback_copilot.errors import ConfigurationError
from rollback_copilot.models import AzureSlotSettings, SwapResult

logger = logging.getLogger(__name__)

# Throttling, conflicting operations, gateway errors and network trouble
_TRANSIENT_PATTERNS = re.compile(
    r"too\s*many\s*requests|throttl|\b429\b|\b409\b|conflict|another operation"
    r"|timed?\s*out|timeout|\b50[0234]\b|service unavailable|bad gateway"
    r"|connection (reset|aborted|refused|error)|temporarily",
    re.IGNORECASE,
)


def is_transient_error(stderr: str) -> bool:
    """Classify Azure CLI error output as retryable or not."""
    return bool(_TRANSIENT_PATTERNS.search(stderr))


class AzureSlotSwapBackend:
    def __init__(self, settings: AzureSlotSettings) -> None:
        if not settings.configured:
            msg = "Azure slot swap needs azure.resource_group and azure.app_name"
            raise ConfigurationError(msg)
        self.settings = settings

    def command(self) -> list[str]:
        s = self.settings
        assert s.resource_group is not None and s.app_name is not None
        return [
            s.az_path,
            "webapp",
            "deployment",
            "slot",
            "swap",
            "--resource-group",
            s.resource_group,
            "--name",
            s.app_name,
            "--slot",
            s.source_slot,
            "--target-slot",
            s.target_slot,
        ]

    async def swap(self) -> SwapResult:
        cmd = self.command()
        logger.info(
            "Swapping %s/%s: %s <-> %s",
            self.settings.resource_group,
            self.settings.app_name,
            self.settings.source_slot,
            self.settings.target_slot,
        )
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return SwapResult.failure(
                f"{cmd[0]} not found. Is the Azure CLI installed?", transient=False
            )

        try:
            _, stderr = await proc.communicate()
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        if proc.returncode == 0:
            return SwapResult.ok()

        message = stderr.decode(errors="replace").strip() or f"exit code {proc.returncode}"
        return SwapResult.failure(message, transient=is_transient_error(message))
