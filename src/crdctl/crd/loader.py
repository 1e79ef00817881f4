"""Discover CRD manifests on disk and parse them into CRDObjects.

Directories are searched recursively and only files with a manifest
extension are considered there; a path named explicitly is always parsed.
Files are visited in lexicographic order so repeated runs see the same
sequence.

Duplicate identities are allowed: the definition loaded last wins, while the
object keeps the position where its identity was first seen.
"""

import logging
from pathlib import Path

import yaml

from crdctl.errors import DiscoveryError, ParseError

from .base import CRD_API_GROUP, CRD_KIND, CRDObject

logger = logging.getLogger(__name__)

MANIFEST_EXTENSIONS = (".yaml", ".yml", ".json")


def expand_paths(paths, logger=logger):
    """Expand files and directories into an ordered list of manifest files.

    Args:
        paths: Ordered sequence of files or directories

    Returns:
        list[Path]: Files to parse, without duplicates, in a stable order
    """
    files = []
    seen = set()

    for raw in paths:
        path = Path(raw)
        if not path.exists():
            raise DiscoveryError(path, "path does not exist")

        if path.is_dir():
            try:
                found = sorted(
                    p
                    for p in path.rglob("*")
                    if p.is_file() and p.suffix.lower() in MANIFEST_EXTENSIONS
                )
            except OSError as e:
                raise DiscoveryError(path, f"cannot list directory: {e}") from e
            logger.debug(f"Found {len(found)} manifest file(s) under {path}")
        elif path.is_file():
            found = [path]
        else:
            raise DiscoveryError(path, "not a regular file or directory")

        for f in found:
            key = f.resolve()
            if key not in seen:
                seen.add(key)
                files.append(f)

    return files


def read_documents(path):
    """Yield ``(index, document)`` for each non-empty YAML document in a file.

    Index is 1-based and counts empty documents too, so it matches what a
    reader sees when counting ``---`` separators.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DiscoveryError(path, f"cannot read file: {e}") from e

    index = 0
    try:
        for index, doc in enumerate(yaml.safe_load_all(text), start=1):
            if doc is None:
                continue
            yield index, doc
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        line = mark.line + 1 if mark is not None else None
        raise ParseError(path, f"invalid YAML: {e}", document=index + 1, line=line) from e


def is_crd(doc):
    api_version = str(doc.get("apiVersion", ""))
    return doc.get("kind") == CRD_KIND and api_version.startswith(f"{CRD_API_GROUP}/")


def parse_crd(doc, path, index):
    """Build a CRDObject from a CRD document, validating what apply needs."""
    metadata = doc.get("metadata")
    spec = doc.get("spec")
    if not isinstance(metadata, dict) or not metadata.get("name"):
        raise ParseError(path, "CRD is missing metadata.name", document=index)
    if not isinstance(spec, dict) or not spec.get("group"):
        raise ParseError(path, "CRD is missing spec.group", document=index)

    names = spec.get("names")
    if not isinstance(names, dict) or not names.get("kind"):
        raise ParseError(path, "CRD is missing spec.names.kind", document=index)

    versions = [
        v["name"]
        for v in spec.get("versions") or []
        if isinstance(v, dict) and v.get("name")
    ]

    return CRDObject(
        name=str(metadata["name"]),
        group=str(spec["group"]),
        kind=str(names["kind"]),
        versions=versions,
        body=doc,
        source=str(path),
        document=index,
    )


def load_file(path, strict=False, logger=logger):
    """Parse all CRDs in one manifest file."""
    crds = []
    for index, doc in read_documents(path):
        if not isinstance(doc, dict):
            what = type(doc).__name__
            if strict:
                raise ParseError(path, f"expected a mapping, got {what}", document=index)
            logger.debug(f"Skipping non-manifest document {path}#{index} ({what})")
            continue

        if not is_crd(doc):
            what = f"{doc.get('apiVersion', '?')}/{doc.get('kind', '?')}"
            if strict:
                raise ParseError(path, f"not a CRD: {what}", document=index)
            logger.debug(f"Skipping non-CRD document {path}#{index} ({what})")
            continue

        crds.append(parse_crd(doc, path, index))
    return crds


def load_crds(paths, strict=False, logger=logger):
    """Load every CRD found under ``paths``.

    Args:
        paths: Ordered sequence of files or directories
        strict: Raise ParseError on non-CRD documents instead of skipping them
        logger: Logger to report progress on

    Returns:
        list[CRDObject]: One object per identity, in load order

    Raises:
        DiscoveryError: A path is missing or unreadable
        ParseError: A document is malformed (always fatal)
    """
    by_identity = {}

    for path in expand_paths(paths, logger=logger):
        for crd in load_file(path, strict=strict, logger=logger):
            previous = by_identity.get(crd.identity)
            if previous is not None:
                logger.warning(
                    f"CRD {crd.identity} from {crd.location} overrides "
                    f"the definition from {previous.location}"
                )
            by_identity[crd.identity] = crd

    crds = list(by_identity.values())
    logger.info(f"Loaded {len(crds)} CRD(s) from {len(paths)} path(s)")
    return crds
