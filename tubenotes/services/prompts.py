"""Prompt templates for the multi-pass summarization pipeline and chat.

Every template is a pure function of its inputs. All prompts ask the model to
emit only the final result; `provider.strip_thinking_tokens` cleans up when
a model ignores that.
"""

from __future__ import annotations

CATEGORIES = (
    "programming_tutorial",
    "tech_talk",
    "science_education",
    "ai_ml",
    "history",
    "psychology",
    "philosophy",
    "health_medicine",
    "business_finance",
    "news_opinion",
    "product_review",
    "interview_podcast",
    "education",
    "math_engineering",
    "music_arts",
    "diy_howto",
    "travel_culture",
    "gaming",
)
DEFAULT_CATEGORY = "general"

LANGUAGE_NAMES = {
    "en": "English",
    "tr": "Turkish (Türkçe)",
    "ru": "Russian (Русский)",
    "de": "German (Deutsch)",
    "fr": "French (Français)",
    "es": "Spanish (Español)",
    "it": "Italian (Italiano)",
    "pt": "Portuguese (Português)",
    "ja": "Japanese (日本語)",
    "zh": "Chinese (中文)",
}

NO_THINKING = (
    "CRITICAL: Output ONLY the final result. Do NOT include your reasoning process, "
    "analysis steps, thinking, self-corrections, or any preamble. Start directly with the content."
)

CHAT_SYSTEM_INSTRUCTION = " ".join([
    "You are a helpful AI assistant that answers questions about a YouTube video.",
    "You have access to the video's summary and transcript.",
    "Use this context to provide accurate, helpful answers.",
    "When a search tool is available, use it to verify facts, find definitions,",
    "or get updates on topics discussed in the video.",
    "If the user asks about something not covered in the video, use search to help them.",
    "Be conversational and friendly. Format your responses in markdown when helpful.",
    "If you reference specific parts, mention approximate timestamps when available.",
])

_CATEGORY_LIST = ", ".join(CATEGORIES + (DEFAULT_CATEGORY,))


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


# ── Pass 1 ───────────────────────────────────────────────────────────────────


def structural_analysis_prompt(transcript: str) -> str:
    return f"""You are an expert content analyst. Analyze this video transcript and provide a structural breakdown.

{NO_THINKING}

TRANSCRIPT:
{transcript}

Provide your analysis as valid JSON with this structure:
{{
  "title_suggestion": "A concise title for this video's content",
  "category": "one of: {_CATEGORY_LIST}",
  "difficulty": "beginner | intermediate | advanced",
  "duration_estimate": "estimated video duration",
  "sections": [
    {{
      "title": "Section title",
      "start_time": "approximate timestamp",
      "start_seconds": 0,
      "topics": ["topic1", "topic2"],
      "summary": "Brief 1-2 sentence summary of this section"
    }}
  ],
  "key_topics": ["Main topic 1", "Main topic 2"],
  "speakers": ["Speaker names if identifiable"]
}}

Respond ONLY with valid JSON, no markdown code fences, no explanation."""


def category_detection_prompt(transcript_sample: str) -> str:
    return f"""Classify this video transcript into exactly one category. Respond with ONLY the category name, nothing else.

Categories: {_CATEGORY_LIST}

TRANSCRIPT SAMPLE:
{transcript_sample}

Respond with ONLY the category name, nothing else."""


# ── Pass 2 ───────────────────────────────────────────────────────────────────

CATEGORY_SECTIONS = {
    "programming_tutorial": [
        ("Code Examples", "Include the actual code discussed or demonstrated. Use fenced blocks with language tags and brief comments on key lines."),
        ("Technologies & Tools", "List all frameworks, libraries, languages and tools mentioned with context on how they are used."),
    ],
    "tech_talk": [
        ("Architecture & Design", "Describe the system components discussed and how they relate to each other."),
        ("Technical Decisions", "Document key technical decisions, trade-offs and their rationale."),
    ],
    "science_education": [
        ("Key Concepts", "Explain the main scientific concepts in clear language, as the video presents them."),
        ("Data & Evidence", "Summarize the studies, statistics, experiments or evidence cited."),
    ],
    "ai_ml": [
        ("Models & Techniques", "Describe the models, algorithms or techniques discussed at a conceptual level."),
        ("Benchmarks & Results", "Summarize performance metrics, benchmarks or comparisons mentioned."),
        ("Practical Applications", "Note real-world use cases discussed."),
    ],
    "history": [
        ("Historical Context", "Set the scene: time period, geography and key figures involved."),
        ("Timeline of Events", "Chronological breakdown of the key events discussed."),
        ("Significance & Legacy", "Explain the lasting impact of the events."),
    ],
    "psychology": [
        ("Key Theories & Concepts", "Explain the psychological theories, models or frameworks discussed."),
        ("Research & Studies", "Summarize studies, experiments or data cited."),
        ("Practical Takeaways", "Actionable insights for understanding behavior or improving well-being."),
    ],
    "philosophy": [
        ("Core Arguments", "Outline the main arguments and their logical structure."),
        ("Thinkers & Schools", "Reference the philosophers, traditions or schools of thought discussed."),
        ("Questions Raised", "Key open questions or thought experiments posed."),
    ],
    "health_medicine": [
        ("Medical/Health Concepts", "Explain the conditions, treatments or health topics discussed."),
        ("Evidence & Research", "Summarize clinical studies, data or expert opinions cited."),
        ("Practical Advice", "Recommendations mentioned; note that this is informational, not medical advice."),
    ],
    "business_finance": [
        ("Key Business Concepts", "Explain the strategies, financial concepts or market dynamics discussed."),
        ("Data & Metrics", "Summarize financial data, market stats or performance indicators mentioned."),
        ("Actionable Insights", "Strategic takeaways or investment considerations discussed."),
    ],
    "news_opinion": [
        ("Arguments & Analysis", "Outline the main arguments, clearly separating stated facts from opinions."),
        ("Perspectives", "Note the viewpoints discussed, including counterarguments."),
    ],
    "product_review": [
        ("Pros & Cons", "A two-column markdown table: ✅ Pros | ❌ Cons."),
        ("Verdict", "The reviewer's overall assessment and recommendation."),
    ],
    "interview_podcast": [
        ("Key Discussion Points", "Main topics discussed, attributing positions to specific speakers."),
        ("Speaker Insights", "Notable perspectives or revelations from each speaker."),
    ],
    "education": [
        ("Learning Objectives", "What the viewer should understand after watching."),
        ("Core Concepts Explained", "Clear explanations of the material covered."),
        ("Examples & Exercises", "Worked examples, practice problems or demonstrations shown."),
    ],
    "math_engineering": [
        ("Formulas & Equations", "Key formulas or equations discussed, formatted in code blocks."),
        ("Problem-Solving Approach", "The step-by-step methodology demonstrated."),
        ("Applications", "Real-world applications discussed."),
    ],
    "music_arts": [
        ("Artistic Analysis", "Creative techniques, styles or compositions covered."),
        ("Artists & Works", "Specific artists, pieces or performances discussed."),
        ("Creative Insights", "Perspectives on the creative process or interpretation."),
    ],
    "diy_howto": [
        ("Materials & Tools Needed", "All required materials, tools and resources mentioned."),
        ("Step-by-Step Instructions", "Numbered steps following the process demonstrated."),
        ("Tips & Common Mistakes", "Advice and pitfalls mentioned by the creator."),
    ],
    "travel_culture": [
        ("Destinations & Highlights", "Key locations, landmarks or cultural sites covered."),
        ("Cultural Context", "Customs or local knowledge shared."),
        ("Practical Tips", "Travel advice, recommendations or logistics mentioned."),
    ],
    "gaming": [
        ("Gameplay & Mechanics", "Game mechanics, strategies or gameplay elements discussed."),
        ("Analysis & Opinion", "The creator's analysis, ratings or opinions on the game."),
        ("Tips & Strategies", "Tips, tricks or strategies shared for players."),
    ],
}

_DEFAULT_SECTIONS = [
    ("Additional Insights", "Any additional context, connections or implications worth noting."),
]


def category_instructions(category: str) -> str:
    sections = CATEGORY_SECTIONS.get(category, _DEFAULT_SECTIONS)
    return "\n".join(f"\n### {title}\n({hint})" for title, hint in sections)


def deep_summary_prompt(transcript: str, structural_analysis: str, category: str) -> str:
    return f"""You are an expert educational content writer. Create a deep, comprehensive learning document from this video transcript.

{NO_THINKING}

TRANSCRIPT:
{transcript}

STRUCTURAL ANALYSIS:
{structural_analysis}

VIDEO CATEGORY: {category}

Write a rich, highly readable markdown document that serves as a **complete, self-contained lesson**. The reader should fully understand the topic without watching the video. Use bullet points with full sentences, not fragments. Use emojis as visual markers for sections.

FORMAT:
# 🎬 [Video Title]

> [Brief summary in one sentence]

## 🔑 Key Takeaways
- ✅ [Full sentence summarizing a key point with enough context to stand alone.]

## 📝 Detailed Summary
### 📌 [Section Title] [timestamp](yt:SECONDS)
- **[Key concept]**: full sentence explaining the concept with specifics, numbers or examples from the video.
- 💬 Notable quote or paraphrase from the speaker, with context for why it matters.
- 📊 Specific data point, statistic or concrete example mentioned.
- 💡 Background context that helps the reader understand the topic more deeply, woven into the section.
{category_instructions(category)}

TIMESTAMP RULES:
1. Use this exact format for EVERY time reference: [M:SS](yt:SECONDS)
   - Example: [2:15](yt:135)
   - Make sure the seconds value is correct.

WRITING RULES:
- Every bullet is a complete, informative sentence.
- Be specific: include actual numbers, names, studies and examples from the video.
- Use **bold** for key terms on first mention and `code` for technical terms or values.
- Enrich with relevant background knowledge inside the relevant sections, not in a separate section."""


# ── Pass 3 / on-demand translation ───────────────────────────────────────────


def translation_prompt(summary: str, target_language: str) -> str:
    return f"""You are an expert translator. Translate the following video summary into {language_name(target_language)}.

{NO_THINKING}

ORIGINAL SUMMARY:
{summary}

RULES:
1. Translate the prose, headings, and bullet points naturally and accurately.
2. PRESERVE all markdown formatting exactly (headings, bold, lists, code blocks).
3. PRESERVE all timestamps exactly: [M:SS](yt:SECONDS). Do NOT translate or modify the link part.
4. PRESERVE any mermaid code blocks exactly.
5. PRESERVE any code snippets exactly.
6. PRESERVE the token usage footer if present.
7. Use professional, clear language suitable for an educational summary.

Respond with ONLY the translated markdown, no preamble."""


# ── Chat ─────────────────────────────────────────────────────────────────────


def suggested_questions_prompt(summary_markdown: str) -> str:
    return "\n".join([
        "Based on this video summary, suggest 4 interesting questions a viewer might ask.",
        "Return ONLY a JSON array of strings, no other text.",
        "",
        "SUMMARY:",
        summary_markdown,
    ])
