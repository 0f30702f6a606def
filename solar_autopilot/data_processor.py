"""Clean and align raw solar/load telemetry for training."""
import logging
from typing import Dict, List, Optional

import pandas as pd

from .models.stats import sorted_samples

logger = logging.getLogger(__name__)


class DataProcessor:
    """Resamples raw samples onto an hourly grid and cleans them."""

    COLUMNS = ('solar', 'load')
    DEFAULTS = {'solar': 0.0, 'load': 500.0}
    OUTLIER_SIGMA = 3
    SMOOTHING_WINDOW = 7  # hours, centred
    MIN_QUALITY_POINTS = 168

    def prepare_dataset(self, raw_data: Optional[Dict]) -> Dict:
        """
        Turn raw {'solar', 'load'} sample lists into a training dataset.

        Returns:
            Dict with 'solar', 'load' (Sample lists), 'aligned' (hourly rows),
            'statistics' and 'time_range'
        """
        raw_data = raw_data or {}
        series = {column: self._to_series(raw_data.get(column)) for column in self.COLUMNS}

        if all(s.empty for s in series.values()):
            logger.warning("No historical data to process")
            return self.empty_dataset()

        logger.info("🔄 Processing and aligning historical data...")

        aligned = pd.concat(series, axis=1).asfreq('h')
        completeness = {column: float(aligned[column].notna().mean()) for column in self.COLUMNS}

        aligned = self.fill_gaps(aligned)
        aligned = self.remove_outliers(aligned)
        aligned = self.smooth(aligned)
        aligned = aligned.clip(lower=0)

        dataset = {
            'solar': self._to_samples(aligned['solar']),
            'load': self._to_samples(aligned['load']),
            'aligned': [
                {
                    'timestamp': ts.to_pydatetime(),
                    'solar': float(row.solar),
                    'load': float(row.load),
                    'hour': ts.hour,
                    'day_of_week': ts.weekday(),
                    'month': ts.month
                }
                for ts, row in zip(aligned.index, aligned.itertuples(index=False))
            ],
            'statistics': self.calculate_statistics(aligned, completeness),
            'time_range': {
                'start': aligned.index[0].to_pydatetime(),
                'end': aligned.index[-1].to_pydatetime(),
                'hours': len(aligned)
            }
        }

        logger.info(f"✅ Processed {len(aligned)} hourly points "
                    f"({dataset['statistics']['data_quality']['score']:.0f}% quality)")
        return dataset

    @staticmethod
    def _to_series(samples: Optional[List[Dict]]) -> pd.Series:
        cleaned = sorted_samples(samples)
        if not cleaned:
            return pd.Series(dtype=float, index=pd.DatetimeIndex([]))

        series = pd.Series([p['power'] for p in cleaned],
                           index=pd.DatetimeIndex([p['timestamp'] for p in cleaned]),
                           dtype=float)
        return series.resample('1h').mean()

    def fill_gaps(self, aligned: pd.DataFrame) -> pd.DataFrame:
        """Linear interpolation inside, nearest value at the edges, defaults otherwise"""
        filled = aligned.interpolate(method='linear', limit_area='inside')
        filled = filled.ffill().bfill()
        return filled.fillna(value=self.DEFAULTS)

    def remove_outliers(self, aligned: pd.DataFrame) -> pd.DataFrame:
        """Replace values beyond OUTLIER_SIGMA standard deviations with the mean"""
        cleaned = aligned.copy()

        for column in self.COLUMNS:
            values = cleaned[column]
            column_mean = values.mean()
            threshold = self.OUTLIER_SIGMA * values.std(ddof=0)
            if threshold == 0:
                continue

            outliers = (values - column_mean).abs() > threshold
            if outliers.any():
                logger.debug(f"🚫 Replacing {int(outliers.sum())} {column} outliers with mean {column_mean:.1f}")
                cleaned.loc[outliers, column] = column_mean

        return cleaned

    def smooth(self, aligned: pd.DataFrame) -> pd.DataFrame:
        """Centred moving average; edge points without a full window stay as they are"""
        smoothed = aligned.rolling(window=self.SMOOTHING_WINDOW, center=True).mean()
        return smoothed.combine_first(aligned)

    def calculate_statistics(self, aligned: pd.DataFrame, completeness: Dict[str, float]) -> Dict:
        stats = {column: self.field_statistics(aligned[column]) for column in self.COLUMNS}

        correlation = aligned['solar'].corr(aligned['load'])
        stats['correlations'] = {'solar_load': 0.0 if pd.isna(correlation) else float(correlation)}
        stats['data_quality'] = self.assess_quality(len(aligned), completeness)
        return stats

    @staticmethod
    def field_statistics(values: pd.Series) -> Dict:
        values = values.dropna()
        if values.empty:
            return {'count': 0, 'mean': 0.0, 'min': 0.0, 'max': 0.0, 'std': 0.0}

        return {
            'count': int(values.count()),
            'mean': float(values.mean()),
            'min': float(values.min()),
            'max': float(values.max()),
            'std': float(values.std(ddof=0)),
            'median': float(values.median()),
            'percentile25': float(values.quantile(0.25)),
            'percentile75': float(values.quantile(0.75))
        }

    def assess_quality(self, total_points: int, completeness: Dict[str, float]) -> Dict:
        issues = []
        score = 100.0

        for column, ratio in completeness.items():
            if ratio < 0.8:
                issues.append(f"{column} data only {ratio * 100:.1f}% complete")
                score -= (1 - ratio) * 20

        if total_points < self.MIN_QUALITY_POINTS:
            issues.append('Insufficient data volume for reliable training')
            score -= 30

        return {
            'score': max(0.0, score),
            'issues': issues,
            'total_points': total_points,
            'time_span': f"{total_points / 24:.1f} days"
        }

    @staticmethod
    def _to_samples(values: pd.Series) -> List[Dict]:
        return [{'timestamp': ts.to_pydatetime(), 'power': float(v)} for ts, v in values.items()]

    @staticmethod
    def empty_dataset() -> Dict:
        empty_stats = {'count': 0, 'mean': 0.0, 'min': 0.0, 'max': 0.0, 'std': 0.0}
        return {
            'solar': [],
            'load': [],
            'aligned': [],
            'statistics': {
                'solar': dict(empty_stats),
                'load': dict(empty_stats),
                'correlations': {},
                'data_quality': {'score': 0.0, 'issues': ['No data available'], 'total_points': 0}
            },
            'time_range': {'start': None, 'end': None, 'hours': 0}
        }
