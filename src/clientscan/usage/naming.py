import re

_CLASS_WRAPPER = re.compile(r"^(?:builtins\.)?(?:typing\.)?[Tt]ype\[(.*)\]$")
_NONE_MEMBER = re.compile(r"^None\s*\|\s*|\s*\|\s*None$")
_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def strip_reference_markers(identity: str) -> str:
    """``type[a.B] | None`` -> ``a.B``; also drops leading ``*``/``&`` markers."""
    text = identity.strip()
    while True:
        previous = text
        text = _NONE_MEMBER.sub("", text).strip()
        match = _CLASS_WRAPPER.match(text)
        if match:
            text = match.group(1).strip()
        text = text.lstrip("*&")
        if text == previous:
            return text


def declared_name(identity: str) -> str:
    """Bare declared type name: the last path/namespace segment, without generic arguments."""
    text = strip_reference_markers(identity)
    for stop in ("[", "("):
        text = text.split(stop, 1)[0]
    text = re.split(r"[./]", text)[-1]
    return text.strip().lstrip("*&")


def normalize_resource_name(identity: str) -> str:
    """
    Short display name of a resource: the declared type name with its
    camel-case words folded into one lowercase token.

    ``type[lightkube.resources.apps_v1.StorageCluster]`` -> ``storagecluster``,
    ``VolumeV2`` -> ``volumev2``. Idempotent.
    """
    words = _WORD_BOUNDARY.split(declared_name(identity))
    return "".join(word.lower() for word in words)
