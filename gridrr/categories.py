"""Category catalog loading and slug helpers."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Mapping, Optional
from urllib.parse import unquote
from xml.etree import ElementTree as ET

from .models import CategoryGroup, CategoryGroupConfig

logger = logging.getLogger(__name__)


def category_key(name: Optional[str]) -> str:
    """Return the normalised form used to match categories in the store."""
    if not name:
        return ""
    return re.sub(r"\s+", " ", name).strip().lower()


def slugify(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def category_from_slug(slug: str) -> str:
    """Turn a URL slug back into a display name (``web-design`` -> ``Web Design``)."""
    name = unquote(slug).replace("-", " ")
    return re.sub(r"\b\w", lambda match: match.group(0).upper(), name)


def parse_categories_config(path: str) -> List[CategoryGroupConfig]:
    """Parse the category catalog XML and return its groups in file order."""
    logger.info("Loading category catalog from %s", path)
    tree = ET.parse(path)
    root = tree.getroot()

    groups: List[CategoryGroupConfig] = []
    for group_node in root.findall("group"):
        name = group_node.attrib.get("name")
        if not name:
            raise ValueError("Category group is missing a 'name' attribute.")
        categories = [
            node.text.strip()
            for node in group_node.findall("category")
            if node.text and node.text.strip()
        ]
        groups.append(CategoryGroupConfig(name=name, categories=categories))
        logger.debug("Registered category group '%s' (%d)", name, len(categories))

    if not groups:
        raise ValueError("Category catalog does not define any <group>.")

    logger.info(
        "Loaded %d categories in %d groups",
        sum(len(group.categories) for group in groups),
        len(groups),
    )
    return groups


def group_category_counts(
    counts: Mapping[str, int], groups: Iterable[CategoryGroupConfig]
) -> List[CategoryGroup]:
    """Attach store counts to catalog groups, dropping categories with no count."""
    by_key = {category_key(name): count for name, count in counts.items()}
    result: List[CategoryGroup] = []
    for group in groups:
        entries = [
            (name, by_key[category_key(name)])
            for name in group.categories
            if category_key(name) in by_key
        ]
        result.append(CategoryGroup(name=group.name, categories=entries))
    return result
