"""Constellation Data Models

Input records (pages and links) and the snapshot records written for the
visualization layer.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional

import pandas as pd


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 string (or datetime) to an aware UTC datetime.

    Missing, unparseable and out-of-range values (such as the zero time
    ``0001-01-01T00:00:00Z``) give None.
    """
    if value is None or value == "":
        return None
    ts = pd.to_datetime(value, utc=True, errors="coerce")
    if pd.isna(ts) or ts.year <= 1:
        return None
    return ts.to_pydatetime()


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class Edge(NamedTuple):
    """One directed link from one page to another"""
    source: str
    target: str


@dataclass(frozen=True)
class PageNode:
    """A page in the link graph"""
    slug: str
    created_at: Optional[datetime] = None
    outbound: int = 0

    def __post_init__(self):
        # unknown and out-of-range times become None before any statistics see them
        object.__setattr__(self, 'created_at', parse_timestamp(self.created_at))


@dataclass
class ClusterMember:
    slug: str
    outbound: int
    created_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slug": self.slug,
            "outbound": self.outbound,
            "created_at": format_timestamp(self.created_at),
        }


@dataclass
class Cluster:
    """A community of densely interlinked pages"""
    id: int
    size: int
    sample: List[ClusterMember]
    internal_links: int
    external_links: int
    oldest_created_at: Optional[datetime]
    newest_created_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation"""
        return {
            "id": self.id,
            "size": self.size,
            "sample": [member.to_dict() for member in self.sample],
            "internal_links": self.internal_links,
            "external_links": self.external_links,
            "oldest_created_at": format_timestamp(self.oldest_created_at),
            "newest_created_at": format_timestamp(self.newest_created_at),
        }


@dataclass
class ClusterLink:
    """Links crossing between two clusters, source < target"""
    source: int
    target: int
    weight: int

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source, "target": self.target, "weight": self.weight}


@dataclass
class Totals:
    pages: int = 0
    links: int = 0
    clusters: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"pages": self.pages, "links": self.links, "clusters": self.clusters}


@dataclass
class Snapshot:
    """Versioned cluster snapshot of the link graph"""
    generated_at: datetime
    totals: Totals = field(default_factory=Totals)
    clusters: List[Cluster] = field(default_factory=list)
    links: List[ClusterLink] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation"""
        return {
            "generated_at": format_timestamp(self.generated_at),
            "totals": self.totals.to_dict(),
            "clusters": [cluster.to_dict() for cluster in self.clusters],
            "links": [link.to_dict() for link in self.links],
        }

    def to_json(self, indent=2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        totals = data.get("totals") or {}
        clusters = [
            Cluster(
                id=int(c["id"]),
                size=int(c["size"]),
                sample=[
                    ClusterMember(
                        slug=m["slug"],
                        outbound=int(m.get("outbound", 0)),
                        created_at=parse_timestamp(m.get("created_at")),
                    )
                    for m in c.get("sample", [])
                ],
                internal_links=int(c.get("internal_links", 0)),
                external_links=int(c.get("external_links", 0)),
                oldest_created_at=parse_timestamp(c.get("oldest_created_at")),
                newest_created_at=parse_timestamp(c.get("newest_created_at")),
            )
            for c in data.get("clusters", [])
        ]
        links = [
            ClusterLink(source=int(l["source"]), target=int(l["target"]), weight=int(l["weight"]))
            for l in data.get("links", [])
        ]
        return cls(
            generated_at=parse_timestamp(data.get("generated_at")),
            totals=Totals(
                pages=int(totals.get("pages", 0)),
                links=int(totals.get("links", 0)),
                clusters=int(totals.get("clusters", 0)),
            ),
            clusters=clusters,
            links=links,
        )
