# AI 멘트/제목 생성 모듈

from .script_generator import DEFAULT_TITLE, ScriptGenerator, build_prompt, pick_title

__all__ = ["DEFAULT_TITLE", "ScriptGenerator", "build_prompt", "pick_title"]
