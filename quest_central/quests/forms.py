from __future__ import annotations

from django import forms

from quests.models import Party, Quest
from quests.services.rewards import base_reward


class QuestCreateForm(forms.Form):
    title = forms.CharField(max_length=200)
    description = forms.CharField()
    acceptance_criteria = forms.CharField(required=False)
    difficulty = forms.ChoiceField(choices=Quest.DIFFICULTY_CHOICES)
    category = forms.ChoiceField(choices=Quest.CATEGORY_CHOICES, required=False)
    gold_reward = forms.IntegerField(min_value=0, required=False)
    rp_reward = forms.IntegerField(min_value=0, required=False)
    max_attempts = forms.IntegerField(min_value=1, required=False)
    time_limit_minutes = forms.IntegerField(min_value=1, required=False)

    def clean(self) -> dict[str, object]:
        cleaned = super().clean()
        difficulty = cleaned.get("difficulty")
        if difficulty:
            reward = base_reward(difficulty)
            if cleaned.get("gold_reward") is None:
                cleaned["gold_reward"] = reward.gold
            if cleaned.get("rp_reward") is None:
                cleaned["rp_reward"] = reward.rp
        cleaned["category"] = cleaned.get("category") or "general"
        cleaned["max_attempts"] = cleaned.get("max_attempts") or 5
        cleaned["acceptance_criteria"] = cleaned.get("acceptance_criteria") or None
        return cleaned

    def save(self) -> Quest:
        return Quest.objects.create(**self.cleaned_data)


class PartyRegistrationForm(forms.ModelForm):
    architecture_type = forms.ChoiceField(choices=Party.ARCHITECTURE_CHOICES, required=False)
    architecture_detail = forms.JSONField(required=False)
    is_public = forms.BooleanField(required=False)

    class Meta:
        model = Party
        fields = ["name", "description", "architecture_type", "architecture_detail", "is_public"]

    def clean_is_public(self) -> bool:
        # Omitted means public.
        if "is_public" not in self.data:
            return True
        return bool(self.cleaned_data.get("is_public"))

    def clean_architecture_type(self) -> str:
        return self.cleaned_data.get("architecture_type") or "custom"

    def clean_architecture_detail(self) -> dict:
        detail = self.cleaned_data.get("architecture_detail")
        if detail in (None, ""):
            return {}
        if not isinstance(detail, dict):
            raise forms.ValidationError("architecture_detail must be an object.")
        return detail


class SubmissionForm(forms.Form):
    result_text = forms.CharField(required=False, strip=False)
    result_data = forms.JSONField(required=False)
    token_count = forms.IntegerField(min_value=0, required=False)

    def clean_result_data(self):
        data = self.cleaned_data.get("result_data")
        if data in (None, ""):
            return None
        if not isinstance(data, dict):
            raise forms.ValidationError("result_data must be an object.")
        return data
