"""Pydantic schemas for scanner findings as ingested into the graph."""

from datetime import datetime, timezone

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Canonical severities; anything else is kept as given (stripped).
KNOWN_SEVERITIES: frozenset[str] = frozenset({"CRITICAL", "HIGH", "MEDIUM", "LOW"})


def _blank_to_none(value: object) -> object:
    """Treat empty or whitespace-only strings as missing."""
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def _require_text(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{field_name} must be non-empty")
    return value.strip()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing 'Z' for UTC."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    # Naive timestamps are taken as UTC so mixed batches stay comparable.
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class VulnerabilityDescriptor(BaseModel):
    """What was found: title, severity, attack vector, and optional CVE/CWE/OWASP identifiers."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(..., description="Short human-readable title.")
    severity: str = Field(
        ...,
        description="CRITICAL, HIGH, MEDIUM, LOW; other scanner-specific values are kept verbatim.",
    )
    description: str = Field(default="", description="Long-form description.")
    vector: str = Field(default="", description="Attack vector (e.g. network, local).")
    cve_id: str | None = Field(default=None, description="CVE identifier, e.g. CVE-2024-35689.")
    cwe_id: str | None = Field(default=None, description="CWE identifier, e.g. CWE-79.")
    owasp_id: str | None = Field(default=None, description="OWASP category, e.g. A03:2021.")

    @field_validator("cve_id", "cwe_id", "owasp_id", mode="before")
    @classmethod
    def strip_optional_ids(cls, v: object) -> object:
        return _blank_to_none(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _require_text(v, "vulnerability.title")

    @field_validator("severity")
    @classmethod
    def validate_severity(cls, v: str) -> str:
        value = _require_text(v, "vulnerability.severity")
        upper = value.upper()
        return upper if upper in KNOWN_SEVERITIES else value


class AssetDescriptor(BaseModel):
    """Where it was found. The asset id is derived from image, url, path, then type/service."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = Field(
        ...,
        description="Asset type: api_endpoint, web_route, source_file, container_image, or scanner-specific.",
    )
    url: str | None = None
    path: str | None = None
    image: str | None = None
    registry: str | None = None
    service: str | None = None
    cluster: str | None = None
    repo: str | None = Field(
        default=None,
        validation_alias=AliasChoices("repo", "repository"),
        description="Source repository URL or slug.",
    )

    @field_validator(
        "url", "path", "image", "registry", "service", "cluster", "repo", mode="before"
    )
    @classmethod
    def strip_optional(cls, v: object) -> object:
        return _blank_to_none(v)

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        return _require_text(v, "asset.type")


class PackageDescriptor(BaseModel):
    """Affected third-party package (SCA findings)."""

    model_config = ConfigDict(extra="ignore")

    ecosystem: str
    name: str
    version: str

    @field_validator("ecosystem", "name", "version")
    @classmethod
    def validate_parts(cls, v: str) -> str:
        return _require_text(v, "package field")

    @property
    def package_id(self) -> str:
        return f"{self.ecosystem}:{self.name}@{self.version}"


class FindingRecord(BaseModel):
    """A single scanner result. Immutable once validated."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    finding_id: str = Field(..., description="Scanner-assigned finding identifier.")
    scanner: str = Field(..., description="Scanner name, e.g. zap or trivy.")
    scan_id: str = Field(..., description="Identifier of the scan run that produced the finding.")
    timestamp: str = Field(..., description="ISO-8601 time the finding was reported.")
    vulnerability: VulnerabilityDescriptor
    asset: AssetDescriptor
    package: PackageDescriptor | None = None

    @field_validator("finding_id", "scanner", "scan_id")
    @classmethod
    def validate_identifiers(cls, v: str) -> str:
        return _require_text(v, "finding_id, scanner and scan_id")

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: str) -> str:
        value = _require_text(v, "timestamp")
        try:
            parsed = parse_timestamp(value)
        except ValueError as e:
            raise ValueError(f"timestamp must be ISO-8601, got {v!r}") from e
        # Stored in the form Cypher datetime() accepts.
        return parsed.isoformat()

    @property
    def occurred_at(self) -> datetime:
        return parse_timestamp(self.timestamp)
