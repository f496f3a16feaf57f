"""DeepL translation of question locales."""
