"""Identity-strictness banding shared by master creation and compositing."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class IdentityTier(str, Enum):
    EXACT_COPY = "exact-copy"
    CLOSE_MATCH = "close-match"
    KEY_FEATURES = "key-features"
    INSPIRATION = "inspiration"


@dataclass(frozen=True, slots=True)
class MasterDirective:
    title: str
    rule: str


@dataclass(frozen=True, slots=True)
class CompositeDirective:
    core: str
    face: str


def identity_tier(strictness: int) -> IdentityTier:
    """Band ``strictness`` (0-100); every bound except the bottom one is exclusive."""
    if not 0 <= strictness <= 100:
        raise ValueError(f"identity strictness must be within [0, 100], got {strictness}")
    if strictness > 85:
        return IdentityTier.EXACT_COPY
    if strictness > 60:
        return IdentityTier.CLOSE_MATCH
    if strictness > 30:
        return IdentityTier.KEY_FEATURES
    return IdentityTier.INSPIRATION


MASTER_DIRECTIVES = {
    IdentityTier.EXACT_COPY: MasterDirective(
        title="ABSOLUTE EXACT COPY",
        rule=(
            "The face you create MUST BE A 100% EXACT COPY of the person in the photo. Every "
            "feature (eyes, nose, mouth, jawline, hair) must match 100%."
        ),
    ),
    IdentityTier.CLOSE_MATCH: MasterDirective(
        title="EXACT COPY",
        rule="The face must be VERY CLOSE to the reference photo, keeping the key identifying features.",
    ),
    IdentityTier.KEY_FEATURES: MasterDirective(
        title="KEEP KEY FEATURES",
        rule="Keep the key facial features; small changes to suit the style are allowed.",
    ),
    IdentityTier.INSPIRATION: MasterDirective(
        title="INSPIRATION",
        rule="Use the reference face as inspiration and allow artistic interpretation.",
    ),
}

COMPOSITE_DIRECTIVES = {
    IdentityTier.EXACT_COPY: CompositeDirective(
        core="ABSOLUTE IDENTITY PRESERVATION (STRICTEST REQUIREMENT)",
        face="The face MUST BE A 100% EXACT COPY with no deviation whatsoever.",
    ),
    IdentityTier.CLOSE_MATCH: CompositeDirective(
        core="Identity preservation (STRICT)",
        face="The face must be VERY CLOSE to the reference photo. Keep creative changes to a minimum.",
    ),
    IdentityTier.KEY_FEATURES: CompositeDirective(
        core="Identity preservation",
        face="Keep the key facial features; slight changes of expression are allowed.",
    ),
    IdentityTier.INSPIRATION: CompositeDirective(
        core="Identity inspired by the reference",
        face="Use the reference face as inspiration and allow artistic interpretation.",
    ),
}


def master_directive(strictness: int) -> MasterDirective:
    return MASTER_DIRECTIVES[identity_tier(strictness)]


def composite_directive(strictness: int) -> CompositeDirective:
    return COMPOSITE_DIRECTIVES[identity_tier(strictness)]
