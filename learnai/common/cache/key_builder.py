"""
Key Builder Module

Utilities for creating standardized cache keys.
"""

import hashlib
import json
from typing import Any, Optional, Union


class KeyBuilder:
    """
    Utility for building standardized cache keys.

    Keys are colon-separated. Entity keys start with the entity type and
    id so that everything cached for one student can be invalidated with a
    single prefix delete.
    """

    @staticmethod
    def build(*parts: Any, namespace: Optional[str] = None) -> str:
        processed_parts = []

        if namespace:
            processed_parts.append(str(namespace))

        for part in parts:
            if part is None:
                processed_parts.append("all")
            elif isinstance(part, (int, float, bool, str)):
                processed_parts.append(str(part))
            elif isinstance(part, (dict, list, tuple, set)):
                if isinstance(part, set):
                    part = sorted(part)
                part_json = json.dumps(part, sort_keys=True, default=str)
                processed_parts.append(hashlib.md5(part_json.encode()).hexdigest()[:10])
            else:
                processed_parts.append(f"{part.__class__.__name__}:{part}")

        return ":".join(processed_parts)

    @staticmethod
    def entity_key(entity_type: str, entity_id: Union[str, int],
                   *subresources: Any, namespace: Optional[str] = None) -> str:
        """
        Build a cache key for an entity, e.g. ``progress:<student>:summary:<subject>``.
        """
        return KeyBuilder.build(entity_type, str(entity_id), *subresources, namespace=namespace)

    @staticmethod
    def entity_prefix(entity_type: str, entity_id: Union[str, int], namespace: Optional[str] = None) -> str:
        """Prefix matching every key built by ``entity_key`` for the entity."""
        return KeyBuilder.build(entity_type, str(entity_id), namespace=namespace) + ":"
