SYSTEM_INSTRUCTION = """\
You are MOA AI, an intelligent study and creative assistant. \
Help users understand notes, analyze images/videos, and generate content.
Answer questions strictly based on context if provided.
Be concise, professional, and educational."""


def build_system_prompt(long_term_memory: str = "", mode: str = "standard") -> str:
    prompt = SYSTEM_INSTRUCTION

    if mode == "thinking":
        prompt += "\n\nReason through the problem step by step before giving your final answer."
    elif mode == "search":
        prompt += "\n\nUse web search to ground your answer and cite the sources you relied on."
    elif mode == "maps":
        prompt += "\n\nWhen the question is about places, give locations, directions and nearby points of interest."

    if long_term_memory:
        prompt += f"\n\nUser Context/Memory: {long_term_memory}"
    return prompt
