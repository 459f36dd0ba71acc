"""Forms used by the research application.

This module defines the account forms, the persona form with its tag
inputs, the three experiment wizard steps, the experiment edit form and
the small forms used on the results page.  Forms encapsulate both the
input widgets displayed to users and the server-side validation logic.
"""

from __future__ import annotations

from typing import Any, List

from django import forms
from django.contrib.auth.models import User
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.core.validators import FileExtensionValidator

from .models import Experiment, ExperimentResponse, Persona, normalise_tags


class RegistrationForm(forms.Form):
    """Collects information required to create a new user account."""

    name = forms.CharField(label='Name', max_length=150, widget=forms.TextInput(attrs={
        'class': 'form-control',
        'placeholder': 'Jane Doe',
    }))
    email = forms.EmailField(label='Email', widget=forms.EmailInput(attrs={
        'class': 'form-control',
        'placeholder': 'you@example.com',
    }))
    password = forms.CharField(label='Password', widget=forms.PasswordInput(attrs={
        'class': 'form-control',
        'placeholder': '••••••••',
    }))
    confirm_password = forms.CharField(label='Confirm Password', widget=forms.PasswordInput(attrs={
        'class': 'form-control',
        'placeholder': '••••••••',
    }))

    def clean_email(self) -> str:
        email = self.cleaned_data['email'].strip().lower()
        if User.objects.filter(username=email).exists():
            raise forms.ValidationError('An account with this email already exists.')
        return email

    def clean(self) -> dict[str, Any]:  # type: ignore[override]
        cleaned_data = super().clean()
        password = cleaned_data.get('password')
        confirm = cleaned_data.get('confirm_password')
        if password and confirm and password != confirm:
            self.add_error('confirm_password', 'Passwords do not match.')
        elif password:
            try:
                validate_password(password)
            except ValidationError as exc:
                self.add_error('password', exc)
        return cleaned_data


class LoginForm(forms.Form):
    """Simple login form requesting email and password."""

    email = forms.EmailField(label='Email', widget=forms.EmailInput(attrs={
        'class': 'form-control',
        'placeholder': 'you@example.com',
    }))
    password = forms.CharField(label='Password', widget=forms.PasswordInput(attrs={
        'class': 'form-control',
        'placeholder': '••••••••',
    }))


class TagListField(forms.CharField):
    """A text input holding comma-separated tags, cleaned into a list.

    The tag editor in the template keeps the hidden text value in sync;
    without JavaScript users can type the tags separated by commas.
    """

    def prepare_value(self, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return ', '.join(value)
        return value

    def to_python(self, value: Any) -> List[str]:  # type: ignore[override]
        if isinstance(value, (list, tuple)):
            return normalise_tags(value)
        return normalise_tags(super().to_python(value))

    def validate(self, value: List[str]) -> None:
        if self.required and not value:
            raise ValidationError(self.error_messages['required'], code='required')


def _tag_field(label: str, placeholder: str, help_text: str) -> TagListField:
    return TagListField(
        label=label,
        required=False,
        help_text=help_text,
        widget=forms.TextInput(attrs={
            'class': 'form-control tag-input',
            'placeholder': placeholder,
            'data-tag-input': 'true',
        }),
    )


class PersonaForm(forms.ModelForm):
    """Form for creating or editing a persona and its attributes."""

    interests = _tag_field(
        'Interests',
        'Type an interest and press Enter',
        'Add tags by typing and pressing Enter',
    )
    pain_points = _tag_field(
        'Pain Points',
        'Type a pain point and press Enter',
        'What challenges or frustrations does this persona face?',
    )
    goals = _tag_field(
        'Goals',
        'Type a goal and press Enter',
        'What does this persona want to achieve?',
    )

    class Meta:
        model = Persona
        fields = [
            'name',
            'description',
            'age',
            'gender',
            'occupation',
            'interests',
            'pain_points',
            'goals',
        ]
        widgets = {
            'name': forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'e.g., Sarah Tech Enthusiast'}),
            'description': forms.Textarea(attrs={
                'class': 'form-control',
                'rows': 4,
                'placeholder': "Describe this persona's background, personality, and context...",
            }),
            'age': forms.NumberInput(attrs={'class': 'form-control', 'placeholder': 'e.g., 28', 'min': 1}),
            'gender': forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'e.g., Female, Male, Non-binary'}),
            'occupation': forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'e.g., Software Engineer'}),
        }


class ExperimentBasicsForm(forms.Form):
    """Wizard step 1: title and description."""

    title = forms.CharField(
        label='Title',
        max_length=200,
        error_messages={
            'required': 'Title is required',
            'max_length': 'Title must be less than 200 characters',
        },
        widget=forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'e.g., Product Launch Feedback'}),
    )
    description = forms.CharField(
        label='Description',
        max_length=1000,
        error_messages={
            'required': 'Description is required',
            'max_length': 'Description must be less than 1000 characters',
        },
        widget=forms.Textarea(attrs={
            'class': 'form-control',
            'rows': 4,
            'placeholder': 'Describe what you want to test or learn from this experiment...',
        }),
    )


class ExperimentPromptForm(forms.Form):
    """Wizard step 2: the prompt every persona responds to."""

    prompt = forms.CharField(
        label='Prompt',
        max_length=2000,
        error_messages={
            'required': 'Prompt is required',
            'max_length': 'Prompt must be less than 2000 characters',
        },
        widget=forms.Textarea(attrs={
            'class': 'form-control',
            'rows': 8,
            'placeholder': (
                'e.g., What are your thoughts on our new product feature? '
                'How would it help solve your daily challenges?'
            ),
        }),
    )


class ExperimentPersonasForm(forms.Form):
    """Wizard step 3: choose the participating personas."""

    personas = forms.ModelMultipleChoiceField(
        label='Personas',
        queryset=Persona.objects.none(),
        widget=forms.CheckboxSelectMultiple,
        error_messages={'required': 'At least one persona must be selected'},
    )

    def __init__(self, *args, owner: User, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['personas'].queryset = Persona.objects.filter(owner=owner)


class ExperimentForm(forms.ModelForm):
    """Form for editing an existing experiment."""

    personas = forms.ModelMultipleChoiceField(
        label='Personas',
        queryset=Persona.objects.none(),
        widget=forms.CheckboxSelectMultiple,
        error_messages={'required': 'At least one persona must be selected'},
    )

    class Meta:
        model = Experiment
        fields = ['title', 'description', 'prompt', 'personas']
        widgets = {
            'title': forms.TextInput(attrs={'class': 'form-control'}),
            'description': forms.Textarea(attrs={'class': 'form-control', 'rows': 4}),
            'prompt': forms.Textarea(attrs={'class': 'form-control', 'rows': 8}),
        }

    def __init__(self, *args, owner: User, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['personas'].queryset = Persona.objects.filter(owner=owner)


class SentimentForm(forms.Form):
    """Manual sentiment assignment for a single response."""

    score = forms.FloatField(
        label='Score',
        min_value=-1.0,
        max_value=1.0,
        widget=forms.NumberInput(attrs={'class': 'form-control form-control-sm', 'step': '0.01'}),
    )
    label = forms.ChoiceField(
        label='Label',
        choices=ExperimentResponse.SentimentLabel.choices,
        widget=forms.Select(attrs={'class': 'form-select form-select-sm'}),
    )


class PersonaWorkbookForm(forms.Form):
    """Upload form for the persona Excel template."""

    workbook = forms.FileField(
        label='Persona Workbook',
        validators=[FileExtensionValidator(allowed_extensions=['xlsx'])],
        widget=forms.ClearableFileInput(attrs={'class': 'form-control', 'accept': '.xlsx'}),
    )
