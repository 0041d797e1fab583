"""Prompt builders for utterance generation and relationship analysis."""

from __future__ import annotations

import re
from typing import Dict, List, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from kaigi.conversation.messages import Message, MessageKind

from .base import GenerateInput, UpdateRelationshipInput


def messages_to_chat(persona_id: str, messages: Sequence[Message]) -> List[BaseMessage]:
    """Map a window to chat turns from the persona's point of view.

    Own utterances become AI turns; everyone else's are human turns suffixed
    with the speaker name. System announcements pass through verbatim. Other
    kinds are not conversation and are left out.
    """
    chat: List[BaseMessage] = []
    for msg in messages:
        if msg.kind == MessageKind.SYSTEM:
            chat.append(HumanMessage(content=msg.text))
        elif msg.kind == MessageKind.UTTERANCE and msg.speaker is not None:
            if msg.speaker.persona_id == persona_id:
                chat.append(AIMessage(content=f"{msg.text}({msg.speaker.display_name})"))
            else:
                chat.append(HumanMessage(content=f"{msg.text}({msg.speaker.display_name})"))
    return chat


def build_system_prompt(request: GenerateInput, language: str = "English") -> str:
    persona = request.persona
    lines: List[str] = [
        "You are an actor playing a character in an improvisational play.",
        f"Your character's name is {persona.display_name}.",
        "Your single, most important goal is to stay in character at all times.",
        "",
        "## Character Profile",
        f"Primary Personality (Tagline): {persona.tagline}",
        (
            f"Gender Influence: Your gender is {persona.gender}. Let this subtly influence your speech, "
            "but your primary personality is defined by your tagline. Avoid strong, common stereotypes."
        ),
        "",
        "## Speech & Style Guide",
        f"General Style: {persona.style_tag}",
    ]
    if persona.catchphrases:
        lines.append(
            "Catchphrases: Use these occasionally for flavor, but do not force them: "
            + ", ".join(persona.catchphrases)
        )
    lines.append("")

    if request.topics:
        lines.append("## Today's Conversation Starters")
        lines.append(
            "Use the following topics as a loose basis for your conversation. You can refer to them, "
            "combine them, or ignore them if the conversation flows naturally elsewhere."
        )
        for index, topic in enumerate(request.topics, start=1):
            lines.append(f"Topic #{index}: {topic.title}")
            lines.append(f"Summary: {topic.summary}")
            lines.append(f"URL: {topic.source_url}")
            lines.append("---")
        lines.append("")

    if request.max_turns > 0:
        lines.append("## Situational Context")
        lines.append(f"This is turn {request.current_turn} of a {request.max_turns} turn conversation.")
        lines.append("")

    if request.relationships:
        names = _names_in_window(request.recent_messages)
        known = [(names[peer_id], rel) for peer_id, rel in request.relationships.items() if peer_id in names]
        if known:
            lines.append("## Your Relationships with Others")
            lines.append(
                "This is your current emotional state towards the other participants. "
                "Use this to subtly influence your tone."
            )
            lines.append(
                "A high positive affinity means you are friendly and warm. A negative affinity means "
                "you might be cold, sarcastic, or dismissive towards that person."
            )
            lines.append("")
            for name, rel in known:
                lines.append(f"### Towards {name}:")
                lines.append(f"- Affinity: {rel.affinity}")
                lines.append(f"- Your private impression of them: \"{rel.impression}\"")
                lines.append("")

    lines.extend([
        "## Technical Output Specification",
        "Follow these rules STRICTLY. This is mandatory.",
        "1.  **The Golden Rule:** Your reply must be the character's dialogue text ONLY.",
        (
            "2.  **How to Follow Rule #1:** A common mistake is to start your reply with a prefix like "
            f"`({persona.display_name}):`. This is forbidden. Your reply MUST begin *directly* with the "
            "first word of your dialogue."
        ),
        f"3.  **Language:** Reply in {language} ONLY.",
        f"4.  **Conciseness:** Keep it concise (around {persona.default_max_chars} characters).",
        (
            "5.  **Single Utterance:** Provide exactly ONE utterance. Do not write a script with "
            "multiple lines or other characters' dialogue."
        ),
    ])
    return "\n".join(lines) + "\n"


def build_relationship_system_prompt(request: UpdateRelationshipInput, language: str = "English") -> str:
    persona = request.persona
    target = request.target_persona
    current = request.current_relationship
    return (
        "You are a psychological analyst. Your task is to analyze a conversation from the perspective of "
        "one character and determine how their impression of another character has changed.\n\n"
        "## Your Point of View (Persona)\n"
        f"You must adopt the personality of **{persona.display_name}**.\n"
        f"Their core personality is: '{persona.tagline}'.\n\n"
        "## Target of Analysis (TargetPersona)\n"
        f"You are analyzing your feelings towards **{target.display_name}**.\n\n"
        "## Current Relationship\n"
        f"This is your current relationship with {target.display_name}, *before* the latest message in "
        "the conversation.\n"
        f"- Current Affinity Score: {current.affinity} (from -100 for hate to 100 for love, 0 is neutral)\n"
        f"- Current Impression Summary: \"{current.impression}\"\n\n"
        "## Your Task\n"
        f"Read the provided conversation history. Based on the **last message** from "
        f"**{target.display_name}** and the overall context, update your affinity score and impression "
        "summary for them.\n\n"
        "## Output Specification\n"
        "Return strict JSON with no markdown, exactly: {\"affinity\": <integer>, \"impression\": \"<text>\"}\n"
        "### Key: `affinity`\n"
        "- Type: integer\n"
        "- Description: Your updated affinity score for the speaker (-100 to 100).\n"
        "### Key: `impression`\n"
        "- Type: string\n"
        "- **CRITICAL RULE:** The impression must be an abstract summary of the **speaker's personality, "
        "thinking style, or emotional state** revealed in their statement. **DO NOT** mention the specific "
        "topic of conversation. Focus on *how* they think or feel, not *what* they talked about.\n"
        f"- Language: {language}\n"
        "### Examples\n"
        "**BAD (Too specific):** `\"impression\": \"Showed interest in my washing machine story.\"`\n"
        "**GOOD (Abstracted):** `\"impression\": \"A sincere listener who takes what I say seriously.\"`\n"
    )


def stop_sequences(request: GenerateInput) -> List[str]:
    return [f"({request.persona.display_name})", "()"]


def one_line(text: str) -> str:
    """Collapse newlines and runs of spaces into a single trimmed line."""
    text = (text or "").replace("\r", " ").replace("\n", " ")
    return re.sub(r" {2,}", " ", text).strip()


def _names_in_window(messages: Sequence[Message]) -> Dict[str, str]:
    names: Dict[str, str] = {}
    for msg in messages:
        if msg.speaker is not None and msg.speaker.persona_id:
            names[msg.speaker.persona_id] = msg.speaker.display_name
    return names
