"""
Platform transform configurations.

Each CRM platform gets a TransformConfig that controls how its raw records
are flattened: nesting depth, array expansion, column name length, and
per-field renames or exclusions.
"""

import copy

DEFAULT_MAX_COLUMN_NAME_LENGTH = 128  # DuckDB/Parquet friendly


class TransformConfig:
    """Flattening options for one platform."""

    def __init__(self, max_depth=0, max_array_index=-1,
                 max_column_name_length=DEFAULT_MAX_COLUMN_NAME_LENGTH,
                 field_mappings=None, exclude_fields=None,
                 flatten_arrays=True, preserve_nulls=False):
        # max_depth 0 and max_array_index -1 mean unlimited
        self.max_depth = max_depth
        self.max_array_index = max_array_index
        self.max_column_name_length = max_column_name_length or DEFAULT_MAX_COLUMN_NAME_LENGTH
        self.field_mappings = dict(field_mappings or {})
        self.exclude_fields = list(exclude_fields or [])
        self.flatten_arrays = flatten_arrays
        self.preserve_nulls = preserve_nulls

    def to_dict(self):
        return {
            'max_depth': self.max_depth,
            'max_array_index': self.max_array_index,
            'max_column_name_length': self.max_column_name_length,
            'field_mappings': dict(self.field_mappings),
            'exclude_fields': list(self.exclude_fields),
            'flatten_arrays': self.flatten_arrays,
            'preserve_nulls': self.preserve_nulls,
        }

    def __repr__(self):
        return f"TransformConfig({self.to_dict()!r})"


# --- Platform Definitions ---

PLATFORM_TRANSFORM_CONFIGS = {
    'keap': TransformConfig(
        field_mappings={
            'date_created': 'created_at',
        },
    ),
    'gohighlevel': TransformConfig(),
    'activecampaign': TransformConfig(),
    'default': TransformConfig(),
}


def get_platform_config(platform):
    """
    Get the transform config for a platform.

    Args:
        platform (str): Platform slug, case-insensitive

    Returns:
        TransformConfig: A copy of the platform's config, or of the default
        config when the platform is unknown
    """
    key = (platform or '').lower()
    config = PLATFORM_TRANSFORM_CONFIGS.get(key, PLATFORM_TRANSFORM_CONFIGS['default'])
    # callers get their own copy so the table itself is never mutated
    return copy.deepcopy(config)


def get_available_platforms():
    """Get list of platforms with an explicit configuration."""
    return sorted(name for name in PLATFORM_TRANSFORM_CONFIGS if name != 'default')


def has_platform_support(platform):
    """Check if a platform has its own configuration (not just the default)."""
    return (platform or '').lower() in get_available_platforms()
