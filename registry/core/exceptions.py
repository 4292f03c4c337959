"""
Pipeline Errors

All pipeline errors derive from ValueError so callers that already guard
against malformed input keep working.
"""


class RegistryPipelineError(ValueError):
    """Base class for registry pipeline failures"""


class SchemaMismatchError(RegistryPipelineError):
    """A slot question header could not be tied to a slot index"""

    def __init__(self, header: str, field_tag: str):
        self.header = header
        self.field_tag = field_tag
        super().__init__(
            f"Header '{header}' looks like a '{field_tag}' question "
            f"but contains no slot number"
        )


class CanonicalizationConflictError(RegistryPipelineError):
    """Records of one canonical database disagree on an invariant field"""

    def __init__(self, conflicts):
        self.conflicts = list(conflicts)
        names = sorted({c.name for c in self.conflicts})
        super().__init__(
            f"{len(self.conflicts)} field conflicts across {len(names)} "
            f"canonical databases: {', '.join(names)}"
        )


class OverrideConfigurationError(RegistryPipelineError):
    """A manual override references a name the canonicalizer never produces"""

    def __init__(self, override_kind: str, names):
        self.override_kind = override_kind
        self.names = sorted(names)
        super().__init__(
            f"{override_kind} overrides reference unknown canonical names: "
            f"{', '.join(self.names)}"
        )
