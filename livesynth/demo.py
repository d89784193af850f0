"""Offline demo: replay a bundled component into the live preview.

Needs no API key. The pricing card below is typed out line by line by a
PlaybackClock so pause, resume and the debounced preview can be tried
without a backend.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel

from livesynth.sources.playback import PlaybackClock

DEMO_PROMPT = "A pricing card with a monthly/yearly toggle and a feature list"

DEMO_COMPONENT = """\
import React, { useState } from 'react';
import { Check, Sparkles } from 'lucide-react';

interface PricingCardProps {
  plan?: string;
  monthlyPrice?: number;
  features?: string[];
}

export default function PricingCard({
  plan = 'Pro',
  monthlyPrice = 24,
  features = ['Unlimited projects', 'Live collaboration', 'Priority support'],
}: PricingCardProps) {
  const [yearly, setYearly] = useState(false);
  const price = yearly ? Math.round(monthlyPrice * 10) : monthlyPrice;

  return (
    <div className="min-h-screen flex items-center justify-center bg-slate-100 p-6">
      <div className="w-full max-w-sm rounded-2xl bg-white shadow-xl p-8">
        <div className="flex items-center gap-2 text-indigo-600">
          <Sparkles className="h-5 w-5" aria-hidden="true" />
          <h2 className="text-lg font-semibold">{plan}</h2>
        </div>
        <p className="mt-4 flex items-baseline gap-1">
          <span className="text-4xl font-bold text-slate-900">${price}</span>
          <span className="text-slate-500">/{yearly ? 'year' : 'month'}</span>
        </p>
        <button
          type="button"
          onClick={() => setYearly(!yearly)}
          className="mt-4 text-sm text-indigo-600 underline"
        >
          Switch to {yearly ? 'monthly' : 'yearly'} billing
        </button>
        <ul className="mt-6 space-y-3">
          {features.map((feature) => (
            <li key={feature} className="flex items-center gap-2 text-slate-700">
              <Check className="h-4 w-4 text-emerald-500" aria-hidden="true" />
              {feature}
            </li>
          ))}
        </ul>
        <button
          type="button"
          className="mt-8 w-full rounded-lg bg-indigo-600 py-2 font-medium text-white hover:bg-indigo-500"
        >
          Get started
        </button>
      </div>
    </div>
  );
}
"""

DEMO_INTRO = (
    "[bold]How the preview keeps up:[/bold] each line is appended to the "
    "buffer as it arrives, and the preview is recompiled only after the "
    "stream has been quiet for the debounce window. Renders that fall "
    "behind a newer snapshot are dropped.\n\n"
    "[dim]Space pauses and resumes, s stops. Open the printed index.html "
    "in a browser to watch the sandboxed preview.[/dim]"
)


def demo_clock(interval: float = 0.15) -> PlaybackClock:
    """A fresh clock that replays the bundled component."""
    return PlaybackClock.from_text(DEMO_COMPONENT, interval)


def print_intro(console: Console) -> None:
    console.print(Panel(DEMO_INTRO, title="[bold blue]livesynth demo[/bold blue]", border_style="blue"))
