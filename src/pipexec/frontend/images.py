# frontend/images.py
from __future__ import annotations

_REGISTRY_PREFIXES = (
    "docker.io/library/",
    "index.docker.io/library/",
    "docker.io/",
    "index.docker.io/",
    "library/",
)


def trim_image(name: str) -> str:
    """
    Reduce an image reference to its familiar repository name.

        docker.io/library/golang:1.21  -> golang
        plugins/docker@sha256:abc      -> plugins/docker
        localhost:5000/tools/go:latest -> localhost:5000/tools/go
    """
    image = name.strip().split("@", 1)[0]
    slash = image.rfind("/")
    colon = image.rfind(":")
    if colon > slash:
        image = image[:colon]
    for prefix in _REGISTRY_PREFIXES:
        if image.startswith(prefix):
            return image[len(prefix):]
    return image


def match_image(image: str, *candidates: str) -> bool:
    """Return True if `image` names the same repository as any candidate."""
    trimmed = trim_image(image)
    return any(trimmed == trim_image(c) for c in candidates)
