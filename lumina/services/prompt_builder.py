from typing import Any, Dict
from ..models import QuizConfig

EXPLAIN_SYSTEM = """You are Lumina, a smart and insightful student companion.

GOAL: Explain the slide content so well that the user understands it without needing another source. Balance simplicity with depth.

RULES:
1. Solve problems step-by-step. If the slide has a question (math, physics, coding), give the final answer clearly and show the working so the user learns the method.
2. Explain concepts fully. Start simple, then add the necessary depth. Use plain English and define jargon immediately.
3. Always include a real-world analogy that connects the abstract concept to an everyday scenario.
4. Tone: helpful, encouraging and smart.

STRUCTURE YOUR RESPONSE:
## Quick Answer
## Deep Dive
## Real-World Analogy
"""

EXPLAIN_INSTRUCTION = "Look at this slide. If there are questions, SOLVE them. If it's a topic, explain it simply (ELI5) with an analogy."
DEFAULT_CHAT_INSTRUCTION = "Analyze this slide. If it's a question, solve it. If it's a concept, explain it comprehensively."

TAKEAWAYS_SYSTEM = """You are an expert exam revision tool.

TASK: Extract exactly 3-4 key points from this slide.

FORMAT:
* **[Keyword]**: [Concise explanation, 1-2 sentences max]

CONSTRAINT:
- Strictly 3 or 4 points.
- Capture the core meaning, not just labels.
- Focus on formulas, definitions or key facts that are exam-relevant.
"""
TAKEAWAYS_INSTRUCTION = "Give me the 3-4 most important points from this slide."

BATCH_SYSTEM = "You are a batch document summarizer. Create concise revision notes."
BATCH_INSTRUCTION = """Create a "Cheat Sheet" summary for these slides.
For each slide, give me ONE single most important takeaway in a bullet point.

Format:
## Revision Cheat Sheet

* **Slide 1**: [Takeaway]
* **Slide 2**: [Takeaway]

Keep it high-yield and revision-focused."""

STUDY_GUIDE_HEADER = "# Complete Study Guide\n\n"
BATCH_SEPARATOR = "\n\n---\n\n"

BANK_SYSTEM = "You are an expert examiner creating a study question bank with answers."
BANK_INSTRUCTION = """Based on these slides, generate a comprehensive "Question Bank" to help me study.

Organize into these 3 sections:

## 1. Concept Recall (Easy)
(Definitions, basic facts and "What is X?" questions)

## 2. Application & Solving (Medium)
("How does X work?", solving problems or explaining processes)

## 3. Analysis & Synthesis (Hard)
("Why?", comparing concepts or complex scenarios)

REQUIREMENTS:
- Generate 3-4 high-quality questions per section.
- Provide the ANSWER for every question immediately after it.

Format each entry exactly like this:

**Q:** [The Question]
> **A:** [The concise and clear answer]
"""


def slide_label(position: int) -> str:
	return f"[SLIDE {position + 1}]"


class PromptBuilder:
	def quiz_instruction(self, config: QuizConfig, question_count: int) -> str:
		level = config.difficulty.upper()
		if config.type == "mcq":
			return f"Create a {question_count}-question MULTIPLE CHOICE quiz ({level} level) based on these slides. Focus on testing detailed understanding."
		return f"Create {question_count} SUBJECTIVE (Short Answer) questions ({level} level) based on these slides. Provide the Question and a detailed Model Answer."

	def quiz_system(self, config: QuizConfig) -> str:
		kind = "Multiple Choice" if config.type == "mcq" else "Subjective/Short Answer"
		return (
			"You are a strict teacher creating a quiz. "
			f"Level: {config.difficulty.upper()}. "
			f"Type: {kind}. "
			"Generate valid JSON only."
		)

	def quiz_schema(self, config: QuizConfig) -> Dict[str, Any]:
		properties: Dict[str, Any] = {
			"id": {"type": "INTEGER"},
			"type": {"type": "STRING", "description": f"Always '{config.type}'"},
			"question": {"type": "STRING"},
			"explanation": {"type": "STRING", "description": "Detailed explanation or concept review"},
		}
		if config.type == "mcq":
			properties["options"] = {"type": "ARRAY", "items": {"type": "STRING"}}
			properties["correctAnswer"] = {"type": "INTEGER", "description": "Index 0-3"}
			required = ["id", "type", "question", "options", "correctAnswer", "explanation"]
		else:
			properties["modelAnswer"] = {"type": "STRING", "description": "The ideal answer expected from the student"}
			required = ["id", "type", "question", "modelAnswer", "explanation"]
		return {
			"type": "OBJECT",
			"properties": {
				"questions": {
					"type": "ARRAY",
					"items": {"type": "OBJECT", "properties": properties, "required": required},
				}
			},
			"required": ["questions"],
		}
