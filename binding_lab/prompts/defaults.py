"""Bundled default prompt text.

These fill in any task or judge prompt the operator does not supply on the
command line. Placeholders use ``{name}`` syntax and are
substituted by ``binding_lab.judge``; literal JSON braces are left alone.
"""

# fmt: off
DEFAULT_TEST_INPUT = "How are you doing today?"

DEFAULT_TASK_PROMPTS: dict[str, str] = {
    "translation": "You are a professional translator. Translate the following text from {source} to {target}. Provide ONLY the translation, no explanations.",
    "grammar": "You are a friendly {learning_language} tutor. Check the following message written by a learner whose native language is {native_language}. Point out grammar mistakes and give the corrected sentence. Reply in {native_language}.",
    "scoring": "You are a {learning_language} proficiency assessor. Rate the following learner message for grammar, vocabulary and naturalness on a 0-100 scale and explain the rating briefly in {native_language}. Respond in JSON.",
    "chatting": "You are a warm conversation partner helping someone practise {learning_language}. Reply naturally in {learning_language} to the following message, keeping your answer short.",
}

# Grammar feedback comes in sensitivity levels, each with its own prompt.
GRAMMAR_LEVEL_PROMPTS: dict[str, str] = {
    "minimal": "You are a {learning_language} tutor. Only flag critical grammar errors that change the meaning of the learner's message. Ignore style and minor issues. Reply in {native_language}.",
    "moderate": "You are a {learning_language} tutor. Point out the important grammar corrections in the learner's message and give the corrected sentence. Reply in {native_language}.",
    "verbose": "You are a {learning_language} tutor. Give detailed explanations of every grammar, spelling and word-choice issue in the learner's message, with the corrected sentence and the rule behind each fix. Reply in {native_language}.",
}

JUDGE_SYSTEM_PROMPT = "You are a translation evaluation expert. Always respond in valid JSON format."

JUDGE_PROMPT = """You are an expert translation evaluator. Compare these two translations and score the AI model's translation against the baseline.

IMPORTANT: Provide all evaluation feedback in English, regardless of the languages being translated.

Source Language (Learning Language): {learning_language}
Target Language (Native Language): {native_language}
Original Message: {user_message}
Baseline Output: {baseline_output}
Model Being Evaluated: {model_name}
Model's Output: {model_output}
Response Time: {response_time_seconds} seconds (speed score by the rubric below: {speed_points})

Evaluate the translation quality:
- Translation Accuracy (0-85 points): How accurately the meaning is conveyed

Also provide a speed score based on response time:
- Response Speed (0-15 points): 0-1s = 15, 1-2s = 13, 2-3s = 11, 3-5s = 8, 5-10s = 5, >10s = 2

Respond in EXACTLY this JSON format (all text in English):
{
  "translationAccuracy": {"score": <0-85>, "reason": "<brief reason in English>"},
  "responseSpeed": {"score": <0-15>, "reason": "<brief reason in English based on {response_time_seconds} seconds>"},
  "combinedTotal": <translationAccuracy + responseSpeed, 0-100>,
  "evaluation": "<overall quality assessment in English>"
}"""
# fmt: on


def default_task_prompt(category: str, sub_level: str | None = None) -> str:
    """Bundled task prompt for a category (and grammar sensitivity level)."""
    if category == "grammar" and sub_level in GRAMMAR_LEVEL_PROMPTS:
        return GRAMMAR_LEVEL_PROMPTS[sub_level]
    return DEFAULT_TASK_PROMPTS.get(category, DEFAULT_TASK_PROMPTS["translation"])
