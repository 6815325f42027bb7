# stop_signal.py

from pathlib import Path
from typing import Union


class StopSignal:
    """Sentinel-file stop flag, also used as the cancellation token for external commands.

    Only the file's presence matters; its content is ignored. The listener
    never deletes it: clearing the flag is up to whoever created it.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def is_set(self) -> bool:
        return self.path.exists()

    def request_stop(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch()

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()

    def __repr__(self) -> str:
        return f"StopSignal({str(self.path)!r})"
