"""Scripted stand-ins shared by the executor tests."""

from macup.core.command import CommandOutput


def ok(stdout: str = "") -> CommandOutput:
    return CommandOutput(0, stdout, "")


def failed(stderr: str, returncode: int = 1) -> CommandOutput:
    return CommandOutput(returncode, "", stderr)


class FakeRunner:
    """ElevatedRunner stand-in with scripted answers.

    Each answer is either a CommandOutput to return or an exception
    instance to raise.
    """

    def __init__(
        self,
        *,
        askpass: bool = True,
        run=None,
        noninteractive=None,
        shell=None,
    ) -> None:
        self.askpass = askpass
        self.answers = {
            "run": run if run is not None else ok(),
            "noninteractive": noninteractive,
            "shell": shell if shell is not None else ok(),
        }
        self.calls: list[tuple[str, tuple]] = []

    @property
    def askpass_available(self) -> bool:
        return self.askpass

    def askpass_env(self) -> dict[str, str]:
        return {"SUDO_ASKPASS": "/tmp/askpass"} if self.askpass else {}

    def _answer(self, kind: str, args: tuple):
        self.calls.append((kind, args))
        answer = self.answers[kind]
        if isinstance(answer, BaseException):
            raise answer
        return answer

    async def run(self, program, *args, timeout=None):
        return self._answer("run", (program, *args))

    async def run_noninteractive(self, program, *args, timeout=None):
        return self._answer("noninteractive", (program, *args))

    async def run_shell(self, shell_cmd, timeout=None):
        return self._answer("shell", (shell_cmd,))

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.calls]
