"""Canned opening/quick-reply messages a participant can send by id."""

from src.ng_common.enums import MessageTemplate

MESSAGE_TEMPLATES: dict[str, str] = {
    MessageTemplate.INTERESTED.value: "I'm interested in this project. Can we discuss the details?",
    MessageTemplate.LOWER_PRICE.value: "Would you consider a lower price for this project?",
    MessageTemplate.BEST_OFFER.value: "What's your best offer for this project?",
    MessageTemplate.CUSTOM_REQUEST.value: (
        "I have some specific requirements. Can we discuss customizations?"
    ),
    MessageTemplate.TIMELINE_QUESTION.value: "What's the expected timeline for this project?",
    MessageTemplate.FEATURE_QUESTION.value: (
        "Can you provide more details about the features included?"
    ),
}


def template_text(template_id: str) -> str | None:
    return MESSAGE_TEMPLATES.get(template_id)
