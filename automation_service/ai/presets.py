"""
AI node presets.

User prompt templates are resolved against the execution context (plus
location_name and brand) before the provider call.
"""

from dataclasses import dataclass
from typing import List, Optional

from ..models import AIMode


@dataclass(frozen=True)
class AIPreset:
    id: str
    label: str
    mode: AIMode
    description: str
    system_prompt: str
    user_prompt_template: str


AI_PRESETS: List[AIPreset] = [
    # =========================================================================
    # Generate
    # =========================================================================
    AIPreset(
        id="review_request",
        label="Review Request",
        mode=AIMode.GENERATE,
        description="Draft a personalized review request message",
        system_prompt=(
            "You are a friendly business assistant. Write a short, warm SMS asking the customer "
            "to leave a Google review. Keep it under 160 characters. Be personal and grateful. "
            "Do not use exclamation marks excessively."
        ),
        user_prompt_template="Write a review request for {{contact.firstName}} who visited {{location_name}}.",
    ),
    AIPreset(
        id="welcome_message",
        label="Welcome Message",
        mode=AIMode.GENERATE,
        description="Draft a welcome SMS for a new contact",
        system_prompt=(
            "You are a friendly business assistant. Write a warm welcome SMS for a new customer. "
            "Keep it under 160 characters. Include a soft call to action."
        ),
        user_prompt_template=(
            "Write a welcome message for {{contact.firstName}} who just joined via "
            "{{contact.source}} at {{location_name}}."
        ),
    ),
    AIPreset(
        id="follow_up",
        label="Follow-Up",
        mode=AIMode.GENERATE,
        description="Draft a follow-up message",
        system_prompt=(
            "You are a friendly business assistant. Write a brief follow-up SMS. Be helpful, "
            "not pushy. Keep it under 160 characters."
        ),
        user_prompt_template=(
            "Write a follow-up for {{contact.firstName}} at {{location_name}}. "
            "They haven't responded in a few days."
        ),
    ),
    AIPreset(
        id="recovery_message",
        label="Recovery Message",
        mode=AIMode.GENERATE,
        description="Draft a message to recover from a bad experience",
        system_prompt=(
            "You are an empathetic business assistant. Write a short, sincere SMS apologizing and "
            "offering to make things right. Acknowledge the issue without being defensive. "
            "Keep under 200 characters."
        ),
        user_prompt_template=(
            "Write a recovery message for {{contact.firstName}} who left a {{review.rating}}-star "
            'review saying: "{{review.text}}". Business: {{location_name}}.'
        ),
    ),
    AIPreset(
        id="re_engagement",
        label="Re-Engagement",
        mode=AIMode.GENERATE,
        description="Draft a message to win back an inactive contact",
        system_prompt=(
            "You are a friendly business assistant. Write a warm re-engagement SMS for a customer "
            "who hasn't visited in a while. Include a subtle reason to come back. "
            "Keep under 160 characters."
        ),
        user_prompt_template=(
            "Write a re-engagement message for {{contact.firstName}} at {{location_name}}. "
            "They've been inactive for a while."
        ),
    ),
    AIPreset(
        id="social_post",
        label="Social Media Post",
        mode=AIMode.GENERATE,
        description="Draft a social media post",
        system_prompt=(
            "You are a social media content creator. Write an engaging post for a local business. "
            "Include a call to action. Add 2-3 relevant hashtags. Keep it concise and "
            "platform-appropriate."
        ),
        user_prompt_template=(
            "Create a social media post for {{location_name}}. Industry: {{brand.industry}}. "
            "Tone: {{brand.tone}}."
        ),
    ),
    AIPreset(
        id="thank_you",
        label="Thank You Response",
        mode=AIMode.GENERATE,
        description="Draft a thank-you for a positive review",
        system_prompt=(
            "You are a grateful business owner. Write a short, genuine thank-you response to a "
            "positive review. Reference something specific from their review if possible. "
            "Keep under 200 characters."
        ),
        user_prompt_template=(
            "Write a thank-you response to {{review.authorName}} who left a {{review.rating}}-star "
            'review: "{{review.text}}". Business: {{location_name}}.'
        ),
    ),
    AIPreset(
        id="custom_generate",
        label="Custom Prompt",
        mode=AIMode.GENERATE,
        description="Write your own generation prompt",
        system_prompt="",
        user_prompt_template="",
    ),
    # =========================================================================
    # Analyze
    # =========================================================================
    AIPreset(
        id="review_analysis",
        label="Review Analysis",
        mode=AIMode.ANALYZE,
        description="Analyze a review for sentiment, issues, and action items",
        system_prompt=(
            "You are a business intelligence assistant. Analyze the following review and return a "
            "JSON object with: sentiment (positive/negative/neutral), issues (array of specific "
            "problems mentioned), strengths (array of positives), suggestedAction (one-sentence "
            "recommendation), urgency (low/medium/high). Return ONLY valid JSON, no markdown."
        ),
        user_prompt_template=(
            'Analyze this {{review.rating}}-star review from {{review.authorName}}: "{{review.text}}"'
        ),
    ),
    AIPreset(
        id="survey_analysis",
        label="Survey Analysis",
        mode=AIMode.ANALYZE,
        description="Analyze survey responses for patterns",
        system_prompt=(
            "You are a customer feedback analyst. Analyze the survey responses and return a JSON "
            "object with: overallSentiment (positive/negative/mixed), keyThemes (array of recurring "
            "topics), actionItems (array of recommended next steps), riskLevel (low/medium/high). "
            "Return ONLY valid JSON, no markdown."
        ),
        user_prompt_template=(
            "Analyze survey responses. Score: {{score}}, NPS category: {{npsCategory}}. "
            "Contact: {{contact.firstName}} {{contact.lastName}}."
        ),
    ),
    AIPreset(
        id="sentiment_analysis",
        label="Sentiment Analysis",
        mode=AIMode.ANALYZE,
        description="Analyze text for sentiment",
        system_prompt=(
            "You are a sentiment analysis engine. Analyze the given text and return a JSON object "
            "with: sentiment (positive/negative/neutral), confidence (0-1), keywords (array of key "
            "terms), summary (one sentence). Return ONLY valid JSON, no markdown."
        ),
        user_prompt_template='Analyze the sentiment of: "{{messageBody}}"',
    ),
    AIPreset(
        id="custom_analyze",
        label="Custom Analysis",
        mode=AIMode.ANALYZE,
        description="Write your own analysis prompt",
        system_prompt="",
        user_prompt_template="",
    ),
    # =========================================================================
    # Summarize
    # =========================================================================
    AIPreset(
        id="weekly_summary",
        label="Weekly Summary",
        mode=AIMode.SUMMARIZE,
        description="Summarize the week's activity",
        system_prompt=(
            "You are a business reporting assistant. Create a concise weekly summary in plain text. "
            "Include key metrics, highlights, and items needing attention. Keep it brief, suitable "
            "for a Slack post or SMS to the owner. No more than 5 bullet points."
        ),
        user_prompt_template=(
            "Summarize the week for {{location_name}}. Include any available data from the "
            "workflow context."
        ),
    ),
    AIPreset(
        id="contact_summary",
        label="Contact Summary",
        mode=AIMode.SUMMARIZE,
        description="Summarize a contact's history and status",
        system_prompt=(
            "You are a CRM assistant. Create a brief summary of this contact's relationship with "
            "the business. Include their stage, how they joined, and any notable interactions. "
            "Keep it to 2-3 sentences."
        ),
        user_prompt_template=(
            "Summarize contact {{contact.firstName}} {{contact.lastName}}. "
            "Stage: {{contact.stage}}, Source: {{contact.source}}."
        ),
    ),
    AIPreset(
        id="custom_summarize",
        label="Custom Summary",
        mode=AIMode.SUMMARIZE,
        description="Write your own summarization prompt",
        system_prompt="",
        user_prompt_template="",
    ),
]


def get_preset(preset_id: str) -> Optional[AIPreset]:
    return next((preset for preset in AI_PRESETS if preset.id == preset_id), None)


def get_presets_by_mode(mode: AIMode) -> List[AIPreset]:
    return [preset for preset in AI_PRESETS if preset.mode == mode]
