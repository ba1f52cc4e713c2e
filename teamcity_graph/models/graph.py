from typing import List, Optional

from pydantic import BaseModel, Field


class PackageOut(BaseModel):
    id: str
    version: str
    dependencies: List[str] = Field(default_factory=list, description="Dependency package ids")


class BuildOut(BaseModel):
    id: str
    number: str
    uses_nuget: bool
    created_packages: List[PackageOut] = Field(default_factory=list)
    dependencies: List[PackageOut] = Field(default_factory=list, description="Consumed packages")


class BuildTypeOut(BaseModel):
    id: str
    name: str
    uses_nuget: bool
    publishes_packages: bool
    builds: List[BuildOut] = Field(default_factory=list, description="Latest successful build, if any")


class ProjectOut(BaseModel):
    id: str
    name: str
    uses_nuget: bool
    build_types: List[BuildTypeOut] = Field(default_factory=list)


class EdgeOut(BaseModel):
    source: str = Field(description="Build type id or publishing package id")
    target: str = Field(description="Package id depended upon")


class FailureOut(BaseModel):
    kind: str = Field(description="project|buildType|build")
    ref_id: str
    error: str


class GraphResponse(BaseModel):
    server: str
    package_prefix: Optional[str] = None
    projects: List[ProjectOut]
    edges: List[EdgeOut]
    failures: List[FailureOut] = Field(default_factory=list)
