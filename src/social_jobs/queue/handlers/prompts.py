"""Prompt assembly from job payloads, vertical profiles and lead context."""

from __future__ import annotations

import json

from social_jobs.queue.models import (
    GenerateAssetsPayload,
    GeneratePostPayload,
    LeadView,
    VerticalProfileView,
)

DEFAULT_SYSTEM_PROMPT = "Reply with valid JSON only, following the requested schema."
POST_SYSTEM_PROMPT = (
    "You are a direct-response social media copywriter. "
    "Produce a ready-to-publish pack that appeals to a broad audience without hype. "
    "Reply with valid JSON only."
)
DEFAULT_TONE = "clear and actionable"
DEFAULT_AUDIENCE = "general"
DEFAULT_IMAGE_STYLE = "minimal, studio lighting, no text"

KIT_SHAPE = """{
  "title": string,
  "hook": string,
  "caption": string,
  "hashtags": string[],
  "cta": string,
  "image_prompts": string[]
}"""


def build_assets_prompts(
    payload: GenerateAssetsPayload,
    profile: VerticalProfileView | None,
) -> tuple[str, str]:
    """Return ``(system, user)`` prompts for an activity draft."""

    system = (profile.prompt_system if profile and profile.prompt_system else None) or (
        DEFAULT_SYSTEM_PROMPT
    )
    language = "English" if payload.locale == "en" else "Spanish"
    lines = [
        *_profile_lines(payload.vertical_key, profile),
        "---",
        "Now generate content for this activity.",
        "",
        "Return ONLY JSON with EXACTLY these keys:",
        KIT_SHAPE,
        "",
        "Rules:",
        f"- Language: {language}.",
        "- Hashtags: 6 to 12 items. Use the SEED HASHTAGS when relevant.",
        "- image_prompts: 3 to 6 prompts, each describing one clear image. Apply the IMAGE STYLE.",
        "- No markdown. No comments. JSON only.",
        "",
        "Context:",
        f"- lead_name: {payload.lead_name or '(unknown)'}",
        f"- topic: {payload.topic or '(none)'}",
        f"- offer: {payload.offer or '(none)'}",
        f"- brief: {payload.brief or '(none)'}",
    ]
    return system, "\n".join(lines).strip()


def build_post_prompts(
    payload: GeneratePostPayload,
    lead: LeadView,
    profile: VerticalProfileView | None,
) -> tuple[str, str]:
    """Return ``(system, user)`` prompts for a lead post kit."""

    system = (profile.prompt_system if profile and profile.prompt_system else None) or (
        POST_SYSTEM_PROMPT
    )
    lines = [
        *_profile_lines(payload.vertical_key, profile),
        f"GOAL: {payload.goal}",
        f"CHANNELS: {', '.join(payload.channels)}",
        "",
        "Lead/customer context (may be incomplete):",
        json.dumps(lead.to_context(), ensure_ascii=False, indent=2, sort_keys=True),
        "",
        "Return ONLY JSON with EXACTLY these keys:",
        KIT_SHAPE,
        "",
        "Rules:",
        "- Neutral language unless the lead's country says otherwise.",
        "- Avoid illegal claims (health, finance) and absolute promises.",
        "- Short, clear copy built around one strong idea that sounds human.",
    ]
    return system, "\n".join(lines).strip()


def _profile_lines(vertical_key: str, profile: VerticalProfileView | None) -> list[str]:
    prefix = profile.prompt_user_prefix if profile and profile.prompt_user_prefix else ""
    brand_rules = profile.brand_rules if profile else {}
    style = "; ".join(profile.image_style_rules) if profile else ""
    seeds = " ".join(profile.hashtag_seed) if profile else ""
    ctas = " | ".join(profile.cta_library) if profile else ""
    return [
        prefix,
        "",
        f"VERTICAL: {vertical_key}",
        f"TONE: {(profile.tone if profile else None) or DEFAULT_TONE}",
        f"AUDIENCE: {(profile.audience if profile else None) or DEFAULT_AUDIENCE}",
        f"BRAND RULES (json): {json.dumps(brand_rules, ensure_ascii=False, sort_keys=True)}",
        "",
        f"IMAGE STYLE: {style or DEFAULT_IMAGE_STYLE}",
        "",
        f"SEED HASHTAGS: {seeds}",
        f"SUGGESTED CTAS: {ctas}",
        "",
    ]
