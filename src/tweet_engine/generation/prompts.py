"""Prompt text and request bodies for every generation mode."""

from typing import Any

from tweet_engine.generation.providers import ProviderConfig, RequestFormat
from tweet_engine.models import (
    AdvancedSettings,
    BatchRequest,
    GenerationRequest,
    VisionRequest,
)

STYLE_PROMPTS = {
    "viral": "viral and engaging, optimized for retweets and likes",
    "professional": "professional and informative, suitable for business networking",
    "casual": "casual and friendly, like talking to a friend",
    "thread": "formatted as a Twitter thread with numbered parts, diving deep into the topic",
}

TONE_PROMPTS = {
    "formal": (
        "Write in a professional, business-appropriate tone. "
        "Use complete sentences and avoid slang."
    ),
    "neutral": "Write in a balanced, neutral tone that appeals to a general audience.",
    "casual": "Write in a friendly, conversational tone as if talking to a friend.",
    "playful": "Write in a fun, entertaining tone with humor and personality.",
}

LENGTH_PROMPTS = {
    "short": "Keep it concise and punchy. Aim for around 100 characters.",
    "medium": "Provide moderate detail. Aim for around 200 characters.",
    "long": "Use the full space available. Aim for 270-280 characters.",
}

MOOD_PROMPTS = {
    "optimistic": "uplifting, hopeful, future-focused, positive outlook, silver lining perspective",
    "controversial": (
        "thought-provoking, debate-starter, challenges conventional wisdom, "
        "takes a strong stance, divisive but respectful"
    ),
    "humorous": (
        "funny, witty, meme-worthy, relatable humor, lighthearted, "
        "makes people laugh, comedic timing"
    ),
    "urgent": (
        "time-sensitive, FOMO-inducing, act now, limited time, "
        "immediate action required, breaking news feel"
    ),
    "nostalgic": (
        "reflective, looks back fondly, remembers the good old days, "
        "emotional, warm and fuzzy feelings"
    ),
    "motivational": (
        "inspiring, empowering, encourages action, focuses on growth and achievement, "
        "builds confidence"
    ),
    "critical": (
        "analytical, skeptical, questions assumptions, points out flaws, "
        "constructive criticism, calls out nonsense"
    ),
    "curious": (
        "inquisitive, seeks knowledge, asks questions, invites discussion, "
        "explores possibilities, open-ended"
    ),
}

AUDIENCE_PROMPTS = {
    "developers": (
        "technical, code-focused, development-friendly, uses appropriate tech jargon, "
        "understands programming concepts"
    ),
    "founders": (
        "startup-focused, growth-oriented, business-savvy, entrepreneurial mindset, "
        "discusses scaling, funding, product-market fit"
    ),
    "creators": (
        "creator economy-focused, audience-building, monetization, content strategy, "
        "authentic voice, community engagement"
    ),
    "students": (
        "educational, beginner-friendly, learning-focused, encouraging, "
        "accessible language, acknowledges struggle of learning"
    ),
    "executives": (
        "professional, leadership-focused, strategic, concise, high-level thinking, "
        "industry trends, management wisdom"
    ),
    "general": (
        "accessible, relatable, broadly appealing, avoids jargon, universal themes, "
        "everyday experiences, conversational"
    ),
    "investors": (
        "financially-focused, market-aware, returns-oriented, risk-conscious, "
        "data-driven, discusses markets, portfolios, allocations"
    ),
    "marketers": (
        "marketing-focused, growth-hacking, data-driven, customer psychology, "
        "conversion-optimized, campaign insights, brand strategy"
    ),
}

FEW_SHOT_EXAMPLES = {
    "viral": """Example viral tweets:
1. "Unpopular opinion: most meetings could have been an email. Fight me in the replies. #Productivity #Work"
2. "I've been a developer for 10 years and here's what I wish I knew earlier: Your code doesn't have to be perfect, it just has to work. Ship fast, iterate faster. 🚀 #Coding #DevLife"
3. "I finally deleted Instagram after 5 years. My anxiety dropped 50% in one week. Best decision I made this year. 👋 #DigitalDetox #MentalHealth"
4. "I spent $500 on a course that taught me nothing. Then I found free resources that taught me everything. 💸 #SelfEducation #Learning\"""",
    "professional": """Example professional tweets:
1. "I launched my first SaaS last week. Got my first paying customer today. It took 6 months of late nights and weekends. Worth every second. 🚀 #SaaS #IndieHackers"
2. "I made 50 cold calls yesterday. Got 3 meetings. The lesson: Most people give up way too early. Persistence beats talent. 💼 #Sales #Entrepreneurship"
3. "I spoke at my first conference yesterday. Terrified before, exhausted after, but the messages from attendees made it all worth it. Do the thing that scares you. #PublicSpeaking #Growth\"""",
    "casual": """Example casual tweets:
1. "I just spent 2 hours debugging only to find I was missing a semicolon. I've been coding for 8 years and I still do this. We're all impostors. 😅 #Programming #DevLife"
2. "I told myself I'd wake up at 5am today. My alarm went off, I laughed, and went back to sleep. Maybe tomorrow. 😴 #MorningRoutine #Realistic"
3. "I finally finished that book I started 6 months ago. Took me way longer than it should have but I did it. Small wins. 📚 #Reading #SmallWins\"""",
    "thread": """Example thread tweets:
1/ "I built a side project that hit $1K MRR in 3 months. Here's how I did it:

2/ First, I found a problem I actually had. I was spending hours on manual data entry for my freelance work.

3/ I built a simple automation tool. Nothing fancy. Released it for free first to get feedback.

4/ Key lessons: Solve real problems, talk to users, ship fast. Don't overthink it. 🚀 #IndieHackers #SaaS\"""",
}

SYSTEM_PROMPT_PERSONAL = (
    "You are a viral Twitter content creator who specializes in creating personal, "
    "relatable tweets that resonate with audiences. You write in first person, "
    "sharing real experiences and insights."
)
SYSTEM_PROMPT_GENERAL = (
    "You are a viral Twitter content creator who specializes in creating engaging "
    "tweets that resonate with audiences."
)
SYSTEM_PROMPT_BATCH = (
    "You are a viral Twitter content creator who specializes in creating engaging, "
    "diverse tweets that resonate with audiences."
)

BATCH_SEPARATOR = "---"
BATCH_TEMPERATURE = 0.9
VISION_TEMPERATURE = 0.7
VISION_MAX_TOKENS = 2000


def system_prompt(personal: bool = True) -> str:
    return SYSTEM_PROMPT_PERSONAL if personal else SYSTEM_PROMPT_GENERAL


def _voice_instructions(personal: bool) -> str:
    if personal:
        return (
            '- Write in first person ("I did...", "I learned...", "I found...") '
            "- make it personal and relatable\n"
            "- Share personal experiences, mistakes, lessons learned, or achievements"
        )
    return (
        "- Write in an engaging, relatable style\n"
        "- Focus on the topic at hand with valuable insights or entertainment"
    )


def _hashtag_rule(include: bool) -> str:
    return "Include 2-3 relevant hashtags at the end" if include else "No hashtags"


def _emoji_rule(include: bool) -> str:
    return "Use 1-2 appropriate emojis max" if include else "No emojis"


def _advanced_requirements(settings: AdvancedSettings | None) -> str:
    if settings is None:
        return ""
    return (
        "\nAdditional requirements:\n"
        f"- {TONE_PROMPTS[settings.tone]}\n"
        f"- {LENGTH_PROMPTS[settings.length]}"
    )


def build_tweet_prompt(request: GenerationRequest) -> str:
    """Build the user prompt for a single tweet."""
    if request.use_template and request.template:
        base = (
            f'Create a tweet following this template: "{request.template}"\n\n'
            f"Topic: {request.topic}\n"
            f"Style: {request.style}"
        )
    else:
        base = f'Generate a {request.style} tweet about: "{request.topic}"'

    if request.mood:
        base += f"\nMood: {MOOD_PROMPTS[request.mood]}"
    if request.audience:
        base += f"\nTarget Audience: {AUDIENCE_PROMPTS[request.audience]}"
    if request.hook:
        base += f'\nStart with this hook: "{request.hook}"'

    examples = FEW_SHOT_EXAMPLES.get(request.style, FEW_SHOT_EXAMPLES["casual"])

    return f"""{base}

{examples}

Requirements:
{_voice_instructions(request.personal)}
- Start strong (first 2-3 characters grab attention)
- Under 280 characters total
- {_hashtag_rule(request.include_hashtags)}
- {_emoji_rule(request.include_emojis)}
- Make it {STYLE_PROMPTS[request.style]}
- For threads: format as numbered tweets (1/, 2/, etc.) with each under 280 characters
{_advanced_requirements(request.advanced_settings)}

Output ONLY the tweet text, no explanations or extra commentary."""


def build_batch_prompt(request: BatchRequest) -> str:
    """Build the prompt asking for `batch_count` separated variations."""
    return f"""Generate {request.batch_count} different {request.style} tweets about: "{request.topic}"

Requirements:
{_voice_instructions(request.personal)}
- Each tweet should be unique and varied in approach
- Under 280 characters each
- {_hashtag_rule(request.include_hashtags)}
- {_emoji_rule(request.include_emojis)}
- Make each one {STYLE_PROMPTS[request.style]}
- For threads: format as numbered tweets (1/, 2/, etc.) with each under 280 characters
{_advanced_requirements(request.advanced_settings)}

Output format: Return each tweet on a separate line, separated by "{BATCH_SEPARATOR}". No numbering, no explanations."""


def build_vision_prompt(request: VisionRequest) -> str:
    """Build the image analysis prompt. The answer is requested as JSON."""
    context = f"Context: {request.custom_context}\n\n" if request.custom_context else ""
    hashtags = "Include relevant hashtags" if request.include_hashtags else "No hashtags"
    emojis = "Use appropriate emojis" if request.include_emojis else "No emojis"

    return f"""{context}Analyze this image and generate a {request.style} tweet based on what you see.

Requirements:
- Describe what's in the image briefly
- Identify the location if visible (landmarks, scenery, street signs, building names, recognizable features, etc.)
- Create a {request.style} tweet that relates to the image content
- Include the detected location naturally in the tweet when possible (e.g., "at [Location]", "visiting [Location]", "[Location] vibes", etc.)
- Under 280 characters for the tweet
- {hashtags}
- {emojis}
- Make it {STYLE_PROMPTS[request.style]}
{_advanced_requirements(request.advanced_settings)}

Return only JSON matching this schema:
{{ "description": string, "tweet": string, "location"?: string }}"""


def build_payload(
    provider: ProviderConfig,
    prompt: str,
    system: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 1000,
    image_base64: str | None = None,
    stream: bool = False,
) -> dict[str, Any]:
    """Build the JSON body in the provider's request format.

    Gemini has no system role, so the system prompt is prepended to the user
    text. Images travel as inline base64 JPEG data in both formats.
    """
    if provider.request_format is RequestFormat.GEMINI_CONTENTS:
        text = f"{system}\n\n{prompt}" if system else prompt
        parts: list[dict[str, Any]] = []
        if image_base64:
            parts.append({"inlineData": {"mimeType": "image/jpeg", "data": image_base64}})
        parts.append({"text": text})

        generation_config: dict[str, Any] = {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
        }
        if image_base64:
            generation_config["responseMimeType"] = "application/json"
        return {"contents": [{"parts": parts}], "generationConfig": generation_config}

    messages: list[dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": system})
    if image_base64:
        messages.append(
            {
                "role": "user",
                "content": [
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:image/jpeg;base64,{image_base64}"},
                    },
                    {"type": "text", "text": prompt},
                ],
            }
        )
    else:
        messages.append({"role": "user", "content": prompt})

    payload: dict[str, Any] = {
        "model": provider.model_id,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if stream:
        payload["stream"] = True
    return payload
