"""Host context of a command: where it actually runs.

`ssh`, `docker exec|run` and `kubectl exec` send the rest of the command
line somewhere else. The context names that place as `ssh:user@host`,
`docker:<container>` or `k8s:<pod>`; everything else is `local`.
"""

from whiskerlog.classifier.packages import split_commands, strip_prefixes

LOCAL = "local"

SSH_VALUE_FLAGS = frozenset(
    {"-b", "-c", "-D", "-E", "-e", "-F", "-I", "-i", "-J", "-L", "-l", "-m",
     "-O", "-o", "-p", "-Q", "-R", "-S", "-W", "-w"}
)

DOCKER_VALUE_FLAGS = frozenset(
    {"-e", "--env", "--env-file", "-u", "--user", "-w", "--workdir", "-v", "--volume",
     "-p", "--publish", "--name", "--network", "--entrypoint", "-m", "--memory", "--cpus",
     "--mount", "-l", "--label", "--platform", "--restart", "-h", "--hostname"}
)

KUBECTL_VALUE_FLAGS = frozenset({"-n", "--namespace", "-c", "--container", "--context", "-f", "--filename"})


def _first_operand(words: list[str], value_flags: frozenset[str]) -> tuple[str | None, dict[str, str]]:
    """Return the first non-option word and the values of options before it."""
    values: dict[str, str] = {}
    index = 0
    while index < len(words):
        word = words[index]
        if word == "--":
            index += 1
            break
        if not word.startswith("-"):
            break
        if "=" in word:
            flag, _, value = word.partition("=")
            values[flag] = value
        elif word in value_flags and index + 1 < len(words):
            values[word] = words[index + 1]
            index += 1
        index += 1
    if index < len(words):
        return words[index], values
    return None, values


def _ssh_context(args: list[str]) -> str | None:
    target, values = _first_operand(args, SSH_VALUE_FLAGS)
    if target is None:
        return None
    user, at, host = target.rpartition("@")
    if not at:
        user = values.get("-l", "unknown")
    return f"ssh:{user or 'unknown'}@{host}"


def _docker_context(args: list[str]) -> str | None:
    if not args or args[0] not in ("exec", "run"):
        return None
    container, _ = _first_operand(args[1:], DOCKER_VALUE_FLAGS)
    return f"docker:{container}" if container else None


def _kubectl_context(args: list[str]) -> str | None:
    # Global options may come before the subcommand
    subcommand, _ = _first_operand(args, KUBECTL_VALUE_FLAGS)
    if subcommand != "exec":
        return None
    pod, _ = _first_operand(args[args.index("exec") + 1:], KUBECTL_VALUE_FLAGS)
    if pod is None:
        return None
    return f"k8s:{pod.removeprefix('pod/')}"


def detect_host_context(command: str) -> str:
    """Name the host a command runs on.

    The first ssh, docker or kubectl invocation in a chain decides.

    Returns:
        `ssh:user@host`, `docker:<container>`, `k8s:<pod>` or `local`
    """
    for segment in split_commands(command):
        words = strip_prefixes(segment)
        if not words:
            continue
        program, args = words[0].rsplit("/", 1)[-1], words[1:]

        context = None
        if program == "ssh":
            context = _ssh_context(args)
        elif program == "docker":
            context = _docker_context(args)
        elif program == "kubectl":
            context = _kubectl_context(args)
        if context is not None:
            return context

    return LOCAL
