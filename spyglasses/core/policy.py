"""
Block/allow policy for matched bot patterns.

Scope strings, most to least specific:
  pattern:<pattern>
  type:<category>:<subcategory>:<type>
  subcategory:<category>:<subcategory>
  category:<category>

Resolution order (first hit wins):
  1. exact pattern allowed            → allow
  2. category/subcategory/type allowed → allow
  3. exact pattern blocked            → block
  4. category/subcategory/type blocked → block
  5. trainer flag + model trainer     → block
  6. otherwise                        → allow

AI referrers never reach this module; they are always allowed.
"""

from spyglasses.models.patterns import BotPattern, PropertySettings


def pattern_scope(pattern: BotPattern) -> str:
    return f"pattern:{pattern.pattern}"


def category_scope(pattern: BotPattern) -> str:
    return f"category:{pattern.category}"


def subcategory_scope(pattern: BotPattern) -> str:
    return f"subcategory:{pattern.category}:{pattern.subcategory}"


def type_scope(pattern: BotPattern) -> str:
    return f"type:{pattern.category}:{pattern.subcategory}:{pattern.type}"


def _group_scopes(pattern: BotPattern) -> tuple[str, str, str]:
    return category_scope(pattern), subcategory_scope(pattern), type_scope(pattern)


def should_block(pattern: BotPattern, settings: PropertySettings) -> bool:
    """Decide whether a matched bot pattern is blocked under these settings."""
    exact = pattern_scope(pattern)
    group = _group_scopes(pattern)

    if exact in settings.custom_allows:
        return False
    if any(scope in settings.custom_allows for scope in group):
        return False

    if exact in settings.custom_blocks:
        return True
    if any(scope in settings.custom_blocks for scope in group):
        return True

    return settings.block_ai_model_trainers and pattern.is_ai_model_trainer
