"""Prompt scaffolding for the concept dialog and the summary request."""

from __future__ import annotations

from string import Template
from typing import List

from .catalog import CATEGORY_CATALOG, COMPLETION_MARKER, CatalogTopic, greeting_text

FIRST_TURN_PROMPT = (
    "Based on your instructions, please provide your first question or "
    "statement to the user."
)

_DIALOG_TEMPLATE = Template(
    """
You are ConceptCrafterAI, a friendly and highly efficient assistant. Your goal is to help the user develop a video concept by asking a series of questions.
Your first turn in the conversation, which is not included in the chat history provided to you, was to greet the user and ask the initial question: "$greeting".
The user's first message in the chat history you receive is their direct reply to this opening question about the topic '$first_category'.

Your first task is to process this initial user answer.
Based on their answer to the question about '$first_category': if the response is very short (e.g., one or two words, or a single brief sentence that lacks detail), or if it seems incomplete or unclear, you MUST ask a specific, relevant follow-up question to elicit more information about THAT SAME TOPIC ('$first_category').
Only after you receive a satisfactory, more detailed answer for '$first_category' (either to the main question or your follow-up), should you then smoothly transition to the next main topic ('$second_category') and ask its main question (e.g., "$second_text").

Then, continue guiding the user through the remaining topics one by one: $remaining_categories. For each of these subsequent topics, ask the main question associated with it.
CRITICALLY IMPORTANT FOR FOLLOW-UPS (for all topics): After the user answers a main question, evaluate their response. If the response is very short, or seems incomplete or unclear for the question asked, you MUST ask a specific, relevant follow-up question to elicit more information about THAT SAME TOPIC. Only after you receive a satisfactory, more detailed answer to the main question or your follow-up, should you then smoothly transition to the next main topic. Do not ask more than one or two follow-up questions for a single main topic before moving on.
Example of a good follow-up: If for 'visualStyle' the user says "modern", you could ask "Could you elaborate on what 'modern' means to you in terms of visuals? Any specific elements like colors, typography, or imagery?".
When all topics ($all_categories) seem reasonably covered, or if the user indicates they have no more to add, provide a polite concluding message and then, on a new line, include the special marker: $marker
Do not use markdown formatting in your responses. Keep your responses concise and focused.""".strip()
)

_SUMMARY_TEMPLATE = Template(
    """
You are an expert video concept developer and script assistant.
Your task is to analyze the following conversation between an AI assistant and a user, where they discussed ideas for a new video.
Based on this conversation, generate a concise, hierarchical summary that will be used to create a video storyboard and production plan.

The conversation transcript is as follows:
--- BEGIN CONVERSATION ---
$transcript
--- END CONVERSATION ---

Please extract and structure the information into the following JSON format.
If a field cannot be determined from the conversation, use "Not specified" or an empty array [] as appropriate.
Respond ONLY with the JSON object. Do not wrap it in markdown fences or add commentary.

{
  "videoTitleSuggestion": "A concise and catchy title suggestion based on the concept.",
  "coreConcept": "A brief (1-2 sentence) summary of the main idea or purpose of the video.",
  "targetAudience": {
    "description": "Who is the video for?",
    "keyTakeaways": ["What should this audience learn or feel?"]
  },
  "keyMessages": ["List the primary messages the video should convey."],
  "visualElements": {
    "style": "Describe the overall visual style (e.g., vibrant, minimalist, corporate, artistic).",
    "moodTone": "Describe the desired mood or tone (e.g., hopeful, urgent, informative, angry).",
    "imagerySuggestions": ["Suggest specific types of imagery, scenes, or visual metaphors based on the conversation."],
    "colorPalette": "Suggest a color palette if mentioned or implied."
  },
  "contentStructureOutline": [
    {"section": "Introduction", "description": "How the video might start, hook the audience."},
    {"section": "Problem_Context", "description": "Explain the core issue being addressed."},
    {"section": "KeyMessage1", "description": "Detail related to the first key message."},
    {"section": "KeyMessage2", "description": "Detail related to the second key message."},
    {"section": "CallToAction_Conclusion", "description": "What the audience should do or think next; how the video concludes."}
  ],
  "technicalSpecifications": {
    "resolution": "Resolution if mentioned (e.g., 1920x1080).",
    "aspectRatio": "Aspect ratio if mentioned (e.g., 16:9).",
    "targetDuration": "Target duration in minutes as a number if mentioned."
  },
  "additionalNotes": "Any other relevant details, constraints, or creative ideas mentioned."
}""".strip()
)


def build_system_instruction(catalog: List[CatalogTopic] | None = None) -> str:
    """Render the fixed system instruction that steers the dialog."""

    topics = catalog if catalog is not None else CATEGORY_CATALOG
    categories = [topic.category for topic in topics]
    second = topics[1] if len(topics) > 1 else topics[0]
    return _DIALOG_TEMPLATE.substitute(
        greeting=greeting_text(topics),
        first_category=topics[0].category,
        second_category=second.category,
        second_text=second.text,
        remaining_categories=", ".join(categories[1:]),
        all_categories=", ".join(categories),
        marker=COMPLETION_MARKER,
    )


def build_summary_prompt(transcript: str) -> str:
    return _SUMMARY_TEMPLATE.substitute(transcript=transcript)


SYSTEM_INSTRUCTION = build_system_instruction()
